import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from quill.copilot import CopilotPicker


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _write_events(path: Path, events):
    path.write_text("\n".join(json.dumps(e, ensure_ascii=False) for e in events) + "\n", encoding="utf-8")


@pytest.fixture
def copilot_base(tmp_path):
    base = tmp_path / "copilot"

    aaaa = base / "session-aaaa-0001"
    aaaa.mkdir(parents=True)
    (aaaa / "workspace.yaml").write_text(
        "session_id: session-aaaa-0001\n"
        "cwd: /home/test/proj-copilot\n"
        "title: yaml-sourced title\n"
        "updated_at: 2026-04-18T12:00:00Z\n",
        encoding="utf-8",
    )
    _write_events(
        aaaa / "events.jsonl",
        [
            {"type": "session_start", "cwd": "/elsewhere"},
            {"type": "user", "text": "event title should not win"},
        ],
    )

    bbbb = base / "session-bbbb-0002"
    bbbb.mkdir()
    _write_events(
        bbbb / "events.jsonl",
        [
            {"type": "session_start", "cwd": "/home/test/proj-copilot"},
            {"type": "assistant", "text": "not a user message"},
            {"type": "user", "text": "第一筆 user prompt 從 events.jsonl 讀出"},
            {"type": "user", "text": "second prompt"},
        ],
    )

    cccc = base / "session-cccc-0003"
    cccc.mkdir()
    (cccc / "workspace.yaml").write_text(
        "id: session-cccc-0003\n"
        "workspace: /home/test/proj-other\n"
        "name: alt-keys session\n",
        encoding="utf-8",
    )

    dddd = base / "session-dddd-0004"
    dddd.mkdir()
    (dddd / "workspace.yaml").write_text(
        "session_id: session-dddd-0004\n"
        "cwd: /home/test/proj-created-only\n"
        "title: created only\n"
        "created_at: 2026-04-10T05:00:00Z\n",
        encoding="utf-8",
    )

    (base / "stray-file.txt").write_text("ignored", encoding="utf-8")

    mtimes = {
        "session-aaaa-0001": _utc(2026, 4, 18, 12),
        "session-bbbb-0002": _utc(2026, 4, 17, 9),
        "session-cccc-0003": _utc(2026, 4, 16, 8),
        "session-dddd-0004": _utc(2026, 4, 10, 5),
    }
    for name, when in mtimes.items():
        ts = when.timestamp()
        os.utime(base / name, (ts, ts))
    return base


def _by_id(sessions, session_id):
    return next(s for s in sessions if s.id == session_id)


def test_agent_type():
    assert CopilotPicker().agent_type() == "copilot"


def test_yaml_overrides_events(copilot_base):
    sessions = CopilotPicker(copilot_base).list_sessions("", 0)
    assert len(sessions) == 4
    aaaa = _by_id(sessions, "session-aaaa-0001")
    assert aaaa.title == "yaml-sourced title"
    assert aaaa.cwd == "/home/test/proj-copilot"
    assert aaaa.updated_at == _utc(2026, 4, 18, 12)


def test_sorted_newest_first(copilot_base):
    sessions = CopilotPicker(copilot_base).list_sessions()
    assert [s.id for s in sessions] == [
        "session-aaaa-0001",
        "session-bbbb-0002",
        "session-cccc-0003",
        "session-dddd-0004",
    ]


def test_fallback_to_events(copilot_base):
    sessions = CopilotPicker(copilot_base).list_sessions("", 0)
    bbbb = _by_id(sessions, "session-bbbb-0002")
    assert bbbb.title == "第一筆 user prompt 從 events.jsonl 讀出"
    assert bbbb.cwd == "/home/test/proj-copilot"
    assert bbbb.updated_at == _utc(2026, 4, 17, 9)


def test_created_at_fallback(copilot_base):
    sessions = CopilotPicker(copilot_base).list_sessions("/home/test/proj-created-only", 0)
    assert len(sessions) == 1
    assert sessions[0].updated_at == _utc(2026, 4, 10, 5)


def test_alternate_yaml_keys(copilot_base):
    sessions = CopilotPicker(copilot_base).list_sessions("/home/test/proj-other", 0)
    assert len(sessions) == 1
    assert sessions[0].id == "session-cccc-0003"
    assert sessions[0].title == "alt-keys session"


def test_filter_and_limit(copilot_base):
    picker = CopilotPicker(copilot_base)
    limited = picker.list_sessions("", 2)
    assert [s.id for s in limited] == ["session-aaaa-0001", "session-bbbb-0002"]
    filtered = picker.list_sessions("/home/test/proj-copilot", 0)
    assert sorted(s.id for s in filtered) == ["session-aaaa-0001", "session-bbbb-0002"]


def test_missing_dir(tmp_path):
    picker = CopilotPicker(tmp_path / "copilot-does-not-exist")
    assert picker.list_sessions("", 0) == []


def test_events_title_strips_envelope_and_truncates(tmp_path):
    session_dir = tmp_path / "sess-1"
    session_dir.mkdir()
    long_prompt = "x" * 60
    _write_events(
        session_dir / "events.jsonl",
        [
            {"message": {"role": "user", "content": "<sender_context>meta</sender_context>\n\n" + long_prompt}},
            {"workdir": "/w"},
        ],
    )
    sessions = CopilotPicker(tmp_path).list_sessions()
    assert len(sessions) == 1
    assert sessions[0].id == "sess-1"
    assert sessions[0].title == "x" * 50 + "..."
    assert sessions[0].cwd == "/w"


def test_broken_yaml_falls_back_to_events(tmp_path):
    session_dir = tmp_path / "sess-broken"
    session_dir.mkdir()
    (session_dir / "workspace.yaml").write_text("title: [unclosed\n", encoding="utf-8")
    _write_events(
        session_dir / "events.jsonl",
        ["not an object", {"kind": "prompt", "prompt": "hello there", "cwd": "/p"}],
    )
    sessions = CopilotPicker(tmp_path).list_sessions()
    assert len(sessions) == 1
    assert sessions[0].id == "sess-broken"
    assert sessions[0].title == "hello there"
    assert sessions[0].cwd == "/p"