"""Choice of a session picker from an agent command."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import PurePath

from quill.claude import ClaudePicker
from quill.codex import CodexPicker
from quill.copilot import CopilotPicker
from quill.gemini import GeminiPicker
from quill.kiro import KiroPicker
from quill.session import Picker

_PICKERS: dict[str, Callable[[], Picker]] = {
    "kiro-cli": KiroPicker,
    "claude-agent-acp": ClaudePicker,
    "copilot": CopilotPicker,
    "codex-acp": CodexPicker,
    "codex": CodexPicker,
    "gemini": GeminiPicker,
}


def detect(agent_command: str) -> Picker | None:
    """Return a picker for the agent binary path or name, or None if unknown."""
    factory = _PICKERS.get(PurePath(agent_command).name)
    return factory() if factory is not None else None