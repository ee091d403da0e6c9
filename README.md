# quill

A small library with two jobs:

* **Session pickers**: read the on-disk session stores of several coding
  agents and list past sessions, newest first, so that one can be picked
  and resumed. The agent process does not need to be running.
* **Speech to text**: send an audio file to an OpenAI-compatible Whisper
  endpoint and strip the well-known phrases Whisper invents on silent or
  noisy audio.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Listing sessions

`quill.detect.detect` chooses a picker from the agent's command name or path
and returns `None` for a command it does not know:

```python
from quill.detect import detect

picker = detect("/usr/local/bin/claude-agent-acp")
if picker is not None:
    for session in picker.list_sessions("/home/me/project", 10):
        print(session.updated_at, session.id, session.title)
```

Every picker is a `quill.session.Picker` with two methods:

* `agent_type()` returns the backend's identifier, for example `"codex-acp"`.
* `list_sessions(cwd, limit)` returns `quill.session.Session` records sorted
  newest first. An empty `cwd` lists every session; a `limit` of zero or less
  returns them all. A store that does not exist yields an empty list rather
  than an error, and unreadable or malformed session files are skipped with a
  warning on the module's logger.

A `Session` has `id`, `title`, `cwd`, `updated_at` (a time-zone aware
`datetime`) and `message_count` (filled in by the Codex picker only).

Recognised commands and where their sessions are read from:

| Command                | Picker                        | Store                                   |
|------------------------|-------------------------------|-----------------------------------------|
| `kiro-cli`             | `quill.kiro.KiroPicker`       | `~/.kiro/sessions/cli/*.json`           |
| `claude-agent-acp`     | `quill.claude.ClaudePicker`   | `~/.claude/projects/<cwd>/*.jsonl`      |
| `copilot`              | `quill.copilot.CopilotPicker` | `~/.copilot/session-state/<id>/`        |
| `codex`, `codex-acp`   | `quill.codex.CodexPicker`     | `~/.codex/history.jsonl`                |
| `gemini`               | `quill.gemini.GeminiPicker`   | `~/.gemini/tmp/<project>/chats/`        |

Each picker can also be built directly with another location, which is
handy for tests:

```python
from quill.kiro import KiroPicker

picker = KiroPicker("/tmp/kiro-sessions", "kiro_default")
sessions = picker.list_sessions("", 0)
```

Notes on individual backends:

* **Claude**: the title is the first real user prompt; slash-command and
  local-command wrappers are skipped (`quill.claude.is_claude_command_wrapper`).
  Project directories are matched with `quill.claude.encode_claude_cwd`, and
  the update time is the file's modification time.
* **Codex**: history lines are grouped by session id; the earliest prompt
  becomes the title, the latest timestamp the update time, and the number of
  lines the `message_count`. History carries no working directory, so any
  non-empty `cwd` filter returns no sessions.
* **Copilot**: `workspace.yaml` is read with several accepted key spellings
  (`session_id`/`id`/`sessionId`, `cwd`/`workdir`/`workspace`,
  `title`/`name`/`summary`); `updated_at`, then `created_at`, wins over the
  directory's modification time. Missing values are filled in from
  `events.jsonl`.
* **Kiro**: a `KiroPicker` given an `agent_name` lists only sessions bound to
  that agent; sessions without a recorded agent count as `kiro_default`
  (`quill.kiro.kiro_agent_matches`). When the stored title is only the
  opening of a `<sender_context>` envelope, the title is taken from the
  sibling `.jsonl` conversation file instead.
* **Gemini**: every project directory is walked, and the `cwd` filter matches
  a session whose `projectHash` equals `quill.gemini.gemini_project_hash(cwd)`
  or whose `directories` contain `cwd`. The summary is preferred as the
  title, then the first user message. Subagent transcripts are never listed.

Titles are cleaned of the metadata envelopes that get prepended to prompts
(`<sender_context>`, `<attached_files>`, `<voice_transcription>`). Titles
taken from prompt text are cut to 50 characters with a trailing `...`; a
title that Kiro or Copilot stored as metadata is used as it is. The helpers
are available on their own as `quill.session.strip_quill_envelope` and
`quill.session.truncate_runes`.

## Transcribing audio

```python
from quill.stt import OpenAIConfig, OpenAITranscriber, TranscriptionError

transcriber = OpenAITranscriber(OpenAIConfig(api_key="placeholder", language="zh"))
try:
    text = transcriber.transcribe("voice.ogg")
except TranscriptionError as exc:
    print("transcription failed:", exc)
```

`OpenAIConfig` takes `api_key`, `model`, `language`, `prompt` and
`base_url`. The model defaults to `whisper-1` and the base URL to the public
OpenAI API; `language` and `prompt` are sent only when set. The file is
posted to `<base_url>/audio/transcriptions` with a 120-second timeout.
`TranscriptionError` is raised when the file cannot be opened, the request
fails, the server answers with a status other than 200, or the reply is not
valid JSON.

The returned text has already passed through
`quill.hallucinations.filter_hallucinations`, so a recording that only
produced a phantom caption such as "Thanks for watching!" comes back as an
empty string. English phrases are removed only at the end of the text;
Chinese, Japanese and Korean phrases are removed wherever they occur.

## What it does not do

quill only reads session stores and lists what it finds. It has no command
line, does not start or talk to the agents, and does not resume or modify
sessions. Transcription goes through the remote Whisper API only; there is no
local speech recognition.