"""Session picker for the Kiro CLI session store."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import IO, Any

from quill.session import Picker, Session, strip_quill_envelope, truncate_runes

logger = logging.getLogger(__name__)

_DEFAULT_AGENT = "kiro_default"
_JSONL_SCAN_LIMIT = 32
_MAX_LINE_BYTES = 4 * 1024 * 1024
_TITLE_LENGTH = 50


class KiroPicker(Picker):
    """Reads sessions from ``~/.kiro/sessions/cli/<uuid>.json`` metadata files.

    A non-empty ``agent_name`` restricts results to sessions bound to that
    agent, since sessions cannot be loaded across agent boundaries.
    """

    def __init__(self, base_dir: str | os.PathLike[str] = "", agent_name: str = "") -> None:
        self.base_dir = os.fspath(base_dir)
        self.agent_name = agent_name

    def agent_type(self) -> str:
        return "kiro-cli"

    def _dir(self) -> Path:
        if self.base_dir:
            return Path(self.base_dir)
        return Path.home() / ".kiro" / "sessions" / "cli"

    def list_sessions(self, cwd: str = "", limit: int = 0) -> list[Session]:
        base = self._dir()
        try:
            with os.scandir(base) as it:
                entries = sorted(it, key=lambda e: e.name)
        except FileNotFoundError:
            return []

        sessions: list[Session] = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False) or not entry.name.endswith(".json"):
                continue
            loaded = _load_session(Path(entry.path))
            if loaded is None:
                continue
            session, stored_agent = loaded
            if cwd and session.cwd != cwd:
                continue
            if self.agent_name and not kiro_agent_matches(stored_agent, self.agent_name):
                continue
            sessions.append(session)

        return self._newest_first(sessions, limit)


def kiro_agent_matches(stored_agent: str, want_agent: str) -> bool:
    """Report whether a session's stored agent satisfies ``want_agent``.

    An empty stored agent counts as the default agent ``kiro_default``.
    """
    return (stored_agent or _DEFAULT_AGENT) == want_agent


def looks_like_truncated_sender_context(s: str) -> bool:
    """Report whether ``s`` is only the (possibly cut) sender_context opening tag."""
    t = s.strip()
    if not t.startswith("<"):
        return False
    return t.startswith("<sender_context") or t.startswith("<sender_con")


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} is not a string")
    return value


def _timestamp(data: dict[str, Any], key: str) -> datetime | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} is not a timestamp string")
    if len(value) <= 10 or value[10] not in "Tt":
        raise ValueError(f"field {key!r} is not an RFC 3339 timestamp")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"field {key!r} lacks a time zone")
    return parsed


def _load_session(path: Path) -> tuple[Session, str] | None:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        logger.warning("kiro picker: read session file failed path=%s err=%s", path, exc)
        return None

    try:
        data = json.loads(raw)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("session file is not a JSON object")
        session_id = _string(data, "session_id")
        cwd = _string(data, "cwd")
        raw_title = _string(data, "title")
        created_at = _timestamp(data, "created_at")
        updated_at = _timestamp(data, "updated_at")
        state = data.get("session_state")
        if state is None:
            state = {}
        if not isinstance(state, dict):
            raise ValueError("field 'session_state' is not an object")
        agent_name = _string(state, "agent_name")
    except ValueError as exc:
        logger.warning("kiro picker: parse session file failed path=%s err=%s", path, exc)
        return None

    if not session_id:
        return None

    title = strip_quill_envelope(raw_title).strip()
    if looks_like_truncated_sender_context(raw_title) or not title:
        # The stored title is a prefix of the prompt; when that prefix is
        # only the metadata envelope, the conversation stream has the text.
        recovered = _recover_title_from_jsonl(path.with_name(path.name[: -len(".json")] + ".jsonl"))
        if recovered is not None:
            title = recovered

    session = Session(id=session_id, title=title, cwd=cwd)
    updated = updated_at or created_at
    if updated is not None:
        session.updated_at = updated
    return session, agent_name


def _scan_lines(file: IO[bytes], limit: int) -> Iterator[bytes]:
    for _ in range(limit):
        line = file.readline(_MAX_LINE_BYTES + 1)
        if not line:
            return
        if line.endswith(b"\n"):
            line = line[:-1]
        elif len(line) > _MAX_LINE_BYTES:
            return
        if line.endswith(b"\r"):
            line = line[:-1]
        yield line


def _prompt_texts(raw: bytes) -> list[str] | None:
    """Return the text parts of a Prompt event, or None if ``raw`` is not one."""
    try:
        event = json.loads(raw)
        if event is None:
            return None
        if not isinstance(event, dict):
            raise ValueError("event is not an object")
        kind = _string(event, "kind")
        data = event.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("data is not an object")
        content = data.get("content") or []
        if not isinstance(content, list):
            raise ValueError("content is not a list")
        parts: list[tuple[str, str]] = []
        for item in content:
            item = item or {}
            if not isinstance(item, dict):
                raise ValueError("content item is not an object")
            parts.append((_string(item, "kind"), _string(item, "data")))
    except ValueError:
        return None
    if kind != "Prompt":
        return None
    return [text for part_kind, text in parts if part_kind == "text" and text]


def _recover_title_from_jsonl(jsonl_path: Path) -> str | None:
    try:
        file = open(jsonl_path, "rb")
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("kiro picker: open jsonl failed path=%s err=%s", jsonl_path, exc)
        return None

    with file:
        try:
            for raw in _scan_lines(file, _JSONL_SCAN_LIMIT):
                for text in _prompt_texts(raw) or []:
                    cleaned = strip_quill_envelope(text).strip()
                    if cleaned:
                        return truncate_runes(cleaned, _TITLE_LENGTH)
        except OSError:
            return None
    return None