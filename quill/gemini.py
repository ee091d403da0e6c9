"""Session picker for the gemini-cli chat store."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from quill.session import Picker, Session, strip_quill_envelope, truncate_runes

logger = logging.getLogger(__name__)

# Metadata, a handful of updates and the first user prompt all land in the
# first few hundred records; the cap guards against huge tool outputs.
_SCAN_LIMIT = 256
_MAX_LINE_BYTES = 8 * 1024 * 1024
_TITLE_LENGTH = 50

_REWIND_MARKER = b'"$rewindTo"'


class _LineTooLongError(Exception):
    """A session line exceeded the maximum accepted size."""


def gemini_project_hash(cwd: str) -> str:
    """Return the hex sha256 of ``cwd`` as stored in ``projectHash``; "" for ""."""
    if not cwd:
        return ""
    return hashlib.sha256(cwd.encode("utf-8")).hexdigest()


def is_gemini_session_file(name: str) -> bool:
    """Report whether ``name`` follows the ``session-*.json`` / ``.jsonl`` naming."""
    return name.startswith("session-") and name.endswith((".jsonl", ".json"))


@dataclass
class _Meta:
    session_id: str = ""
    project_hash: str = ""
    start_time: str = ""
    last_updated: str = ""
    summary: str = ""
    directories: list[str] = field(default_factory=list)
    kind: str = ""

    def has_fields(self) -> bool:
        return bool(
            self.session_id
            or self.project_hash
            or self.start_time
            or self.last_updated
            or self.summary
            or self.kind
            or self.directories
        )

    def merge(self, src: _Meta) -> None:
        """Copy the non-empty fields of ``src`` over this metadata."""
        if src.session_id:
            self.session_id = src.session_id
        if src.project_hash:
            self.project_hash = src.project_hash
        if src.start_time:
            self.start_time = src.start_time
        if src.last_updated:
            self.last_updated = src.last_updated
        if src.summary:
            self.summary = src.summary
        if src.directories:
            self.directories = list(src.directories)
        if src.kind:
            self.kind = src.kind


@dataclass(frozen=True)
class _LoadedSession:
    meta: _Meta
    updated_at: datetime
    first_user_message: str

    def matches_cwd(self, cwd: str, wanted_hash: str) -> bool:
        if wanted_hash and self.meta.project_hash == wanted_hash:
            return True
        return cwd in self.meta.directories

    def to_session(self, filter_cwd: str) -> Session:
        # The first directory is the workspace root the session started in.
        cwd = self.meta.directories[0] if self.meta.directories else ""
        if not cwd and filter_cwd:
            cwd = filter_cwd
        summary = self.meta.summary.strip()
        title = (summary or self.first_user_message).strip()
        return Session(
            id=self.meta.session_id,
            title=truncate_runes(title, _TITLE_LENGTH),
            cwd=cwd,
            updated_at=self.updated_at,
        )


class GeminiPicker(Picker):
    """Reads sessions from ``~/.gemini/tmp/<project>/chats/session-*.jsonl``.

    Project directory names are opaque, so every project is walked and the
    cwd filter is matched against each session's stored ``projectHash`` or
    ``directories``. Subagent transcripts are skipped.
    """

    def __init__(self, base_dir: str | os.PathLike[str] = "") -> None:
        self.base_dir = os.fspath(base_dir)

    def agent_type(self) -> str:
        return "gemini"

    def _dir(self) -> Path:
        if self.base_dir:
            return Path(self.base_dir)
        return Path.home() / ".gemini" / "tmp"

    def list_sessions(self, cwd: str = "", limit: int = 0) -> list[Session]:
        base = self._dir()
        try:
            project_dirs = _sorted_entries(base)
        except FileNotFoundError:
            return []

        wanted_hash = gemini_project_hash(cwd)
        sessions: list[Session] = []
        for project in project_dirs:
            if not project.is_dir():
                continue
            chats_dir = Path(project.path) / "chats"
            try:
                entries = _sorted_entries(chats_dir)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("gemini picker: read chats dir failed path=%s err=%s", chats_dir, exc)
                continue
            for entry in entries:
                if entry.is_dir(follow_symlinks=False) or not is_gemini_session_file(entry.name):
                    continue
                loaded = _load_session(entry)
                if loaded is None:
                    continue
                if cwd and not loaded.matches_cwd(cwd, wanted_hash):
                    continue
                sessions.append(loaded.to_session(cwd))

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


def _optional_string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} is not a string")
    return value


def _parse_meta(data: Any) -> _Meta:
    if data is None:
        return _Meta()
    if not isinstance(data, dict):
        raise ValueError("metadata is not an object")
    directories = data.get("directories")
    if directories is None:
        directories = []
    if not isinstance(directories, list):
        raise ValueError("field 'directories' is not a list")
    dirs: list[str] = []
    for item in directories:
        if item is None:
            dirs.append("")
        elif isinstance(item, str):
            dirs.append(item)
        else:
            raise ValueError("directory entry is not a string")
    return _Meta(
        session_id=_optional_string(data, "sessionId"),
        project_hash=_optional_string(data, "projectHash"),
        start_time=_optional_string(data, "startTime"),
        last_updated=_optional_string(data, "lastUpdated"),
        summary=_optional_string(data, "summary"),
        directories=dirs,
        kind=_optional_string(data, "kind"),
    )


def _parse_update(data: Any) -> _Meta | None:
    """Return the metadata of a ``{"$set": {...}}`` record, else None."""
    if not isinstance(data, dict):
        return None
    update = data.get("$set")
    if update is None:
        return None
    try:
        return _parse_meta(update)
    except ValueError:
        return None


def _parse_partial_meta(data: Any) -> _Meta | None:
    try:
        meta = _parse_meta(data)
    except ValueError:
        return None
    return meta if meta.has_fields() else None


def _user_message_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    try:
        for key in ("id", "timestamp"):
            _optional_string(data, key)
        kind = _optional_string(data, "type")
    except ValueError:
        return ""
    if kind != "user":
        return ""
    return _decode_content(data.get("content"))


def _decode_content(content: Any) -> str:
    """Return the first text span of a string, a text part, or a list of parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        text = content.get("text")
        return text if isinstance(text, str) else ""
    if not isinstance(content, list):
        return ""
    texts: list[str] = []
    for part in content:
        if part is None:
            continue
        if not isinstance(part, dict):
            return ""
        text = part.get("text")
        if text is None:
            continue
        if not isinstance(text, str):
            return ""
        texts.append(text)
    return next((t for t in texts if t), "")


def _parse_time(value: str) -> datetime | None:
    """Parse an RFC 3339 timestamp; None when absent or malformed."""
    if len(value) <= 10 or value[10] != "T":
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def _load_session(entry: os.DirEntry[str]) -> _LoadedSession | None:
    path = entry.path
    try:
        stat = entry.stat(follow_symlinks=False)
    except OSError as exc:
        logger.warning("gemini picker: stat failed path=%s err=%s", path, exc)
        return None

    meta = _Meta()
    first_user_message = ""
    try:
        with open(path, "rb") as file:
            try:
                for raw in _scan_lines(file, _SCAN_LIMIT):
                    if not raw:
                        continue
                    try:
                        data = json.loads(raw)
                    except ValueError:
                        continue
                    update = _parse_update(data)
                    if update is not None:
                        meta.merge(update)
                        continue
                    if _REWIND_MARKER in raw:
                        continue
                    partial = _parse_partial_meta(data)
                    if partial is not None:
                        meta.merge(partial)
                        continue
                    if not first_user_message:
                        text = _user_message_text(data)
                        if text:
                            first_user_message = strip_quill_envelope(text)
            except (OSError, _LineTooLongError) as exc:
                logger.warning("gemini picker: scan error path=%s err=%s", path, exc)
    except OSError as exc:
        logger.warning("gemini picker: open failed path=%s err=%s", path, exc)
        return None

    if meta.kind == "subagent" or not meta.session_id:
        return None

    updated = (
        _parse_time(meta.last_updated)
        or _parse_time(meta.start_time)
        or datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    )
    return _LoadedSession(meta=meta, updated_at=updated, first_user_message=first_user_message)