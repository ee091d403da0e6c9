"""Session picker for the Codex CLI prompt history index."""

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

_MAX_LINE_BYTES = 4 * 1024 * 1024
_TITLE_LENGTH = 50


class _LineTooLongError(Exception):
    """A history line exceeded the maximum accepted size."""


@dataclass
class _Aggregate:
    first_ts: int
    last_ts: int
    title: str
    message_count: int = 0


@dataclass(frozen=True)
class _HistoryEntry:
    session_id: str
    ts: int
    text: str


class CodexPicker(Picker):
    """Reads sessions from the flat ``~/.codex/history.jsonl`` index.

    Each line records one prompt; lines are grouped by session id, keeping
    the earliest prompt as the title and the latest timestamp as the update
    time. History entries carry no working directory, so any non-empty cwd
    filter yields no sessions.
    """

    def __init__(self, history_path: str | os.PathLike[str] = "") -> None:
        self.history_path = os.fspath(history_path)

    def agent_type(self) -> str:
        return "codex-acp"

    def _path(self) -> Path:
        if self.history_path:
            return Path(self.history_path)
        return Path.home() / ".codex" / "history.jsonl"

    def list_sessions(self, cwd: str = "", limit: int = 0) -> list[Session]:
        if cwd:
            return []

        path = self._path()
        try:
            file = open(path, "rb")
        except FileNotFoundError:
            return []

        by_session: dict[str, _Aggregate] = {}
        with file:
            try:
                for raw in _scan_lines(file):
                    if not raw:
                        continue
                    entry = _parse_entry(raw)
                    if entry is None or not entry.session_id:
                        continue
                    _accumulate(by_session, entry)
            except (OSError, _LineTooLongError) as exc:
                logger.warning("codex picker: scan error path=%s err=%s", path, exc)

        sessions = [
            Session(
                id=session_id,
                title=truncate_runes(agg.title.strip(), _TITLE_LENGTH),
                updated_at=datetime.fromtimestamp(agg.last_ts, tz=timezone.utc),
                message_count=agg.message_count,
            )
            for session_id, agg in by_session.items()
        ]
        return self._newest_first(sessions, limit)


def _accumulate(by_session: dict[str, _Aggregate], entry: _HistoryEntry) -> None:
    clean_text = strip_quill_envelope(entry.text)
    agg = by_session.setdefault(
        entry.session_id, _Aggregate(first_ts=entry.ts, last_ts=entry.ts, title=clean_text)
    )
    agg.message_count += 1
    # The file is normally time-ordered, but extremes are refreshed on every
    # entry so the earliest-text-as-title rule survives reordering.
    if entry.ts < agg.first_ts:
        agg.first_ts = entry.ts
        agg.title = clean_text
    if entry.ts > agg.last_ts:
        agg.last_ts = entry.ts


def _scan_lines(file: IO[bytes]) -> Iterator[bytes]:
    while line := file.readline(_MAX_LINE_BYTES + 1):
        if line.endswith(b"\n"):
            line = line[:-1]
        elif len(line) > _MAX_LINE_BYTES:
            raise _LineTooLongError("line too long")
        if line.endswith(b"\r"):
            line = line[:-1]
        yield line


def _parse_entry(raw: bytes) -> _HistoryEntry | None:
    try:
        data = json.loads(raw)
        if data is None:
            return _HistoryEntry("", 0, "")
        if not isinstance(data, dict):
            raise ValueError("history line is not a JSON object")
        return _HistoryEntry(
            session_id=_string(data, "session_id"),
            ts=_integer(data, "ts"),
            text=_string(data, "text"),
        )
    except ValueError as exc:
        logger.warning("codex picker: parse history line failed err=%s", exc)
        return None


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} is not a string")
    return value


def _integer(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} is not an integer")
    return value