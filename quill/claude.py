"""Session picker for the claude-agent-acp project store."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from quill.session import Picker, Session, strip_quill_envelope, truncate_runes

logger = logging.getLogger(__name__)

# Real sessions expose a usable first prompt well before this many lines,
# and the cap keeps multi-megabyte transcripts from being read whole.
_TITLE_SCAN_LIMIT = 64
_MAX_LINE_BYTES = 4 * 1024 * 1024
_TITLE_LENGTH = 50

# Opening tags wrapped around user content when a slash command or local
# command was used. These envelopes are never meaningful titles.
_COMMAND_WRAPPER_PREFIXES = (
    "<command-name>",
    "<command-message>",
    "<command-args>",
    "<local-command-caveat>",
    "<local-command-stdout>",
    "<local-command-stderr>",
)


class _LineTooLongError(Exception):
    """A JSONL line exceeded the maximum accepted size."""


def encode_claude_cwd(cwd: str) -> str:
    """Encode ``cwd`` the way project directories are named on disk.

    Every character that is not an ASCII letter or digit becomes ``-``.
    """
    return "".join(ch if ch.isascii() and ch.isalnum() else "-" for ch in cwd)


def is_claude_command_wrapper(text: str) -> bool:
    """Report whether ``text`` is a slash/local command envelope, not a prompt."""
    return text.strip().startswith(_COMMAND_WRAPPER_PREFIXES)


class ClaudePicker(Picker):
    """Reads sessions from ``~/.claude/projects/<encoded-cwd>/<id>.jsonl``."""

    def __init__(self, base_dir: str | os.PathLike[str] = "") -> None:
        self.base_dir = os.fspath(base_dir)

    def agent_type(self) -> str:
        return "claude-agent-acp"

    def _dir(self) -> Path:
        if self.base_dir:
            return Path(self.base_dir)
        return Path.home() / ".claude" / "projects"

    def list_sessions(self, cwd: str = "", limit: int = 0) -> list[Session]:
        base = self._dir()
        try:
            project_dirs = _sorted_entries(base)
        except FileNotFoundError:
            return []

        wanted_dir = encode_claude_cwd(cwd) if cwd else ""
        sessions: list[Session] = []
        for project in project_dirs:
            if not project.is_dir(follow_symlinks=False):
                continue
            if wanted_dir and project.name != wanted_dir:
                continue
            try:
                files = _sorted_entries(project.path)
            except OSError as exc:
                logger.warning(
                    "claude picker: read project dir failed path=%s err=%s", project.path, exc
                )
                continue
            for entry in files:
                if entry.is_dir(follow_symlinks=False) or not entry.name.endswith(".jsonl"):
                    continue
                session = _load_session(entry)
                if session is None:
                    continue
                # The cwd embedded in the session is more authoritative than
                # the lossy directory name.
                if cwd and session.cwd and session.cwd != cwd:
                    continue
                sessions.append(session)

        return self._newest_first(sessions, limit)


def _sorted_entries(path: str | os.PathLike[str]) -> list[os.DirEntry[str]]:
    with os.scandir(path) as entries:
        return sorted(entries, key=lambda e: e.name)


def _scan_lines(file: IO[bytes], limit: int) -> Iterator[bytes]:
    for _ in range(limit):
        line = file.readline(_MAX_LINE_BYTES + 1)
        if not line:
            return
        if line.endswith(b"\n"):
            line = line[:-1]
        elif len(line) > _MAX_LINE_BYTES:
            raise _LineTooLongError("line too long")
        if line.endswith(b"\r"):
            line = line[:-1]
        yield line


@dataclass(frozen=True)
class _ClaudeEvent:
    type: str = ""
    is_meta: bool = False
    cwd: str = ""
    session_id: str = ""
    role: str = ""
    content: Any = None


def _field(obj: dict[str, Any], key: str, kind: type) -> Any:
    value = obj.get(key)
    if value is None:
        return None
    if kind is str and isinstance(value, str):
        return value
    if kind is bool and isinstance(value, bool):
        return value
    if kind is dict and isinstance(value, dict):
        return value
    raise ValueError(f"field {key!r} has unexpected type")


def _parse_event(raw: bytes) -> _ClaudeEvent | None:
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if data is None:
        return _ClaudeEvent()
    if not isinstance(data, dict):
        return None
    try:
        message = _field(data, "message", dict) or {}
        timestamp = _field(data, "timestamp", str)
        if timestamp is not None:
            datetime.fromisoformat(timestamp)
        return _ClaudeEvent(
            type=_field(data, "type", str) or "",
            is_meta=bool(_field(data, "isMeta", bool)),
            cwd=_field(data, "cwd", str) or "",
            session_id=_field(data, "sessionId", str) or "",
            role=_field(message, "role", str) or "",
            content=message.get("content"),
        )
    except ValueError:
        return None


def _load_session(entry: os.DirEntry[str]) -> Session | None:
    path = entry.path
    try:
        stat = entry.stat(follow_symlinks=False)
    except OSError as exc:
        logger.warning("claude picker: stat failed path=%s err=%s", path, exc)
        return None

    session = Session(
        id=entry.name.removesuffix(".jsonl"),
        updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
    )

    try:
        with open(path, "rb") as file:
            try:
                for raw in _scan_lines(file, _TITLE_SCAN_LIMIT):
                    event = _parse_event(raw)
                    if event is None:
                        continue
                    if not session.cwd and event.cwd:
                        session.cwd = event.cwd
                    if event.session_id and not session.id:
                        session.id = event.session_id
                    if not session.title:
                        session.title = _extract_title(event)
                    if session.title and session.cwd:
                        break
            except (OSError, _LineTooLongError) as exc:
                # Whatever was parsed before the failure is still usable.
                logger.warning("claude picker: scan error path=%s err=%s", path, exc)
    except OSError as exc:
        logger.warning("claude picker: open failed path=%s err=%s", path, exc)
        return None

    if not session.id:
        return None
    return session


def _extract_title(event: _ClaudeEvent) -> str:
    if event.type != "user" or event.is_meta:
        return ""
    if event.role and event.role != "user":
        return ""
    text = _decode_content(event.content)
    if not text or is_claude_command_wrapper(text):
        return ""
    text = strip_quill_envelope(text).strip()
    if not text:
        return ""
    return truncate_runes(text, _TITLE_LENGTH)


def _decode_content(content: Any) -> str:
    """Return a plain-string content, or the first text block of a block list."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    blocks: list[tuple[str, str]] = []
    for block in content:
        if block is None:
            continue
        if not isinstance(block, dict):
            return ""
        block_type = block.get("type")
        block_text = block.get("text")
        if block_type is not None and not isinstance(block_type, str):
            return ""
        if block_text is not None and not isinstance(block_text, str):
            return ""
        blocks.append((block_type or "", block_text or ""))
    return next((text for kind, text in blocks if kind == "text" and text), "")