"""Session picker for the Copilot CLI session-state store."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import IO, Any

import yaml

from quill.session import Picker, Session, strip_quill_envelope, truncate_runes

logger = logging.getLogger(__name__)

_TITLE_SCAN_LIMIT = 64
_MAX_LINE_BYTES = 4 * 1024 * 1024
_TITLE_LENGTH = 50

_USER_EVENT_KEYS = ("type", "role", "kind", "event")
_USER_EVENT_VALUES = frozenset({"user", "prompt", "user_prompt"})


class _LineTooLongError(Exception):
    """An events line exceeded the maximum accepted size."""


@dataclass(frozen=True)
class _Workspace:
    """The fields of workspace.yaml the picker uses, aliases already resolved."""

    id: str = ""
    cwd: str = ""
    title: str = ""
    updated_at: datetime | None = None
    created_at: datetime | None = None


class CopilotPicker(Picker):
    """Reads sessions from ``~/.copilot/session-state/<session-id>/``.

    Each session directory may hold a ``workspace.yaml`` with metadata and an
    ``events.jsonl`` event log. Several key spellings are accepted in the
    YAML, and the event log backfills the cwd and title when the YAML is
    missing or incomplete.
    """

    def __init__(self, base_dir: str | os.PathLike[str] = "") -> None:
        self.base_dir = os.fspath(base_dir)

    def agent_type(self) -> str:
        return "copilot"

    def _dir(self) -> Path:
        if self.base_dir:
            return Path(self.base_dir)
        return Path.home() / ".copilot" / "session-state"

    def list_sessions(self, cwd: str = "", limit: int = 0) -> list[Session]:
        base = self._dir()
        try:
            with os.scandir(base) as it:
                entries = sorted(it, key=lambda e: e.name)
        except FileNotFoundError:
            return []

        sessions: list[Session] = []
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False):
                continue
            session = _load_session(entry)
            if session is None:
                continue
            if cwd and session.cwd != cwd:
                continue
            sessions.append(session)

        return self._newest_first(sessions, limit)


def _load_session(entry: os.DirEntry[str]) -> Session | None:
    session_dir = Path(entry.path)
    try:
        stat = entry.stat()
    except OSError as exc:
        logger.warning("copilot picker: stat failed path=%s err=%s", session_dir, exc)
        return None

    session = Session(
        id=entry.name,
        updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
    )

    workspace = _load_workspace(session_dir)
    if workspace is not None:
        if workspace.id:
            session.id = workspace.id
        session.cwd = workspace.cwd
        session.title = workspace.title
        # YAML timestamps are more reliable than the directory mtime.
        if workspace.updated_at is not None:
            session.updated_at = workspace.updated_at
        elif workspace.created_at is not None:
            session.updated_at = workspace.created_at

    if not session.cwd or not session.title:
        _fill_from_events(session_dir, session)

    if not session.id:
        return None
    return session


def _first(*values: str) -> str:
    return next((v for v in values if v), "")


def _load_workspace(session_dir: Path) -> _Workspace | None:
    path = session_dir / "workspace.yaml"
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("copilot picker: read workspace.yaml failed path=%s err=%s", path, exc)
        return None

    try:
        data = yaml.safe_load(raw)
        if data is None:
            return _Workspace()
        if not isinstance(data, dict):
            raise ValueError("workspace.yaml is not a mapping")
        return _Workspace(
            id=_first(
                _yaml_string(data, "session_id"),
                _yaml_string(data, "id"),
                _yaml_string(data, "sessionId"),
            ),
            cwd=_first(
                _yaml_string(data, "cwd"),
                _yaml_string(data, "workdir"),
                _yaml_string(data, "workspace"),
            ),
            title=_first(
                _yaml_string(data, "title"),
                _yaml_string(data, "name"),
                _yaml_string(data, "summary"),
            ),
            updated_at=_yaml_time(data, "updated_at"),
            created_at=_yaml_time(data, "created_at"),
        )
    except (yaml.YAMLError, ValueError) as exc:
        logger.warning("copilot picker: parse workspace.yaml failed path=%s err=%s", path, exc)
        return None


def _yaml_string(data: dict[Any, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise ValueError(f"field {key!r} is not a scalar")


def _yaml_time(data: dict[Any, Any], key: str) -> datetime | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        raise ValueError(f"field {key!r} is not a timestamp")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


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


def _fill_from_events(session_dir: Path, session: Session) -> None:
    """Backfill cwd and title from the first lines of events.jsonl."""
    path = session_dir / "events.jsonl"
    try:
        file = open(path, "rb")
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("copilot picker: open events.jsonl failed path=%s err=%s", path, exc)
        return

    with file:
        try:
            for raw in _scan_lines(file, _TITLE_SCAN_LIMIT):
                try:
                    event = json.loads(raw)
                except ValueError:
                    continue
                if not isinstance(event, dict):
                    continue
                if not session.cwd:
                    session.cwd = _first_non_empty(event, "cwd", "workdir", "workspace")
                if not session.title and _is_user_event(event):
                    text = _extract_text(event)
                    if text:
                        session.title = truncate_runes(
                            strip_quill_envelope(text).strip(), _TITLE_LENGTH
                        )
                if session.cwd and session.title:
                    return
        except (OSError, _LineTooLongError) as exc:
            logger.warning("copilot picker: scan error path=%s err=%s", path, exc)


def _first_non_empty(event: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = event.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _is_user_event(event: dict[str, Any]) -> bool:
    for key in _USER_EVENT_KEYS:
        value = event.get(key)
        if isinstance(value, str) and value in _USER_EVENT_VALUES:
            return True
    message = event.get("message")
    return isinstance(message, dict) and message.get("role") == "user"


def _extract_text(event: dict[str, Any]) -> str:
    for key in ("text", "prompt", "content"):
        value = event.get(key)
        if isinstance(value, str) and value:
            return value
    message = event.get("message")
    if isinstance(message, dict):
        value = message.get("content")
        if isinstance(value, str) and value:
            return value
    return ""