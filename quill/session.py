"""Session records shared by the agent session pickers, plus title clean-up helpers."""

from __future__ import annotations

import abc
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

_LEADING_WHITESPACE = " \t\r\n"

# Metadata wrappers prepended to user prompts; their contents are never
# what a human typed.
_METADATA_TAGS = ("sender_context", "attached_files")

_VOICE_OPEN = "<voice_transcription>"
_VOICE_CLOSE = "</voice_transcription>"

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


def strip_quill_envelope(s: str) -> str:
    """Return the text a human would recognise as the real message in ``s``.

    Leading ``sender_context`` / ``attached_files`` envelopes are peeled off
    (repeatedly, in case they stack). If what remains starts with a
    ``voice_transcription`` block, only the transcribed utterance is returned.
    Envelopes appearing mid-string are left untouched.
    """
    while (stripped := _strip_one_metadata_envelope(s)) != s:
        s = stripped

    inner = _unwrap_voice_transcription(s)
    return s if inner is None else inner


def _strip_one_metadata_envelope(s: str) -> str:
    t = s.lstrip(_LEADING_WHITESPACE)
    for tag in _METADATA_TAGS:
        open_tag = f"<{tag}>"
        close_tag = f"</{tag}>"
        if not t.startswith(open_tag):
            continue
        end = t.find(close_tag)
        if end < 0:
            continue
        return t[end + len(close_tag):].lstrip(_LEADING_WHITESPACE)
    return s


def _unwrap_voice_transcription(s: str) -> str | None:
    t = s.lstrip(_LEADING_WHITESPACE)
    if not t.startswith(_VOICE_OPEN):
        return None
    rest = t[len(_VOICE_OPEN):]
    end = rest.find(_VOICE_CLOSE)
    if end < 0:
        return None
    return rest[:end].strip()


def truncate_runes(s: str, n: int) -> str:
    """Shorten ``s`` to at most ``n`` characters, appending "..." when cut."""
    if len(s) <= n:
        return s
    return s[:n] + "..."


@dataclass
class Session:
    """Minimal metadata needed to render a picker row and resume a session."""

    id: str
    title: str = ""
    cwd: str = ""
    updated_at: datetime = _ZERO_TIME
    message_count: int = 0


class Picker(abc.ABC):
    """Lists historical sessions for one agent backend."""

    @abc.abstractmethod
    def agent_type(self) -> str:
        """Stable identifier for the backend, matching the agent binary name."""

    @abc.abstractmethod
    def list_sessions(self, cwd: str = "", limit: int = 0) -> list[Session]:
        """Return sessions newest first.

        A non-empty ``cwd`` restricts results to that working directory; a
        positive ``limit`` caps the number of results.
        """

    @staticmethod
    def _newest_first(sessions: Iterable[Session], limit: int) -> list[Session]:
        ordered = sorted(sessions, key=lambda s: s.updated_at, reverse=True)
        if limit > 0:
            del ordered[limit:]
        return ordered