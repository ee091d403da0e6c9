import json

import pytest

from quill.codex import CodexPicker

LONG_ZH = "這是一段非常長的繁體中文提示詞" * 5


def _entry(session_id, ts, text):
    return json.dumps({"session_id": session_id, "ts": ts, "text": text}, ensure_ascii=False)


@pytest.fixture
def history(tmp_path):
    lines = [
        _entry("codex-aaaa-0001", 1776592100, "first prompt of session aaaa"),
        _entry("codex-dddd-0004", 1776592500, "later prompt seen first"),
        _entry("codex-aaaa-0001", 1776592200, "second prompt of session aaaa"),
        "{not valid json",
        "",
        _entry("", 1776592999, "entry without a session id"),
        _entry("codex-bbbb-0002", 1776592667, "prompt of session bbbb"),
        _entry("codex-dddd-0004", 1776592200, "earliest prompt seen later"),
        _entry("codex-aaaa-0001", 1776592300, "third prompt of session aaaa"),
        _entry("codex-cccc-0003", 1776592867, LONG_ZH),
    ]
    path = tmp_path / "history.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def _by_id(sessions, session_id):
    return next(s for s in sessions if s.id == session_id)


def test_agent_type():
    assert CodexPicker("").agent_type() == "codex-acp"


def test_dedupe_and_sort(history):
    sessions = CodexPicker(history).list_sessions("", 0)
    assert [s.id for s in sessions] == [
        "codex-cccc-0003",
        "codex-bbbb-0002",
        "codex-dddd-0004",
        "codex-aaaa-0001",
    ]
    aaaa = _by_id(sessions, "codex-aaaa-0001")
    assert aaaa.title == "first prompt of session aaaa"
    assert aaaa.message_count == 3
    assert aaaa.updated_at.timestamp() == 1776592300


def test_out_of_order_entries(history):
    dddd = _by_id(CodexPicker(history).list_sessions("", 0), "codex-dddd-0004")
    assert dddd.title == "earliest prompt seen later"
    assert dddd.updated_at.timestamp() == 1776592500
    assert dddd.message_count == 2


def test_cwd_filter_returns_empty(history):
    assert CodexPicker(history).list_sessions("/some/path", 0) == []


def test_limit(history):
    sessions = CodexPicker(history).list_sessions("", 2)
    assert len(sessions) == 2
    assert sessions[0].id == "codex-cccc-0003"


def test_missing_file(tmp_path):
    picker = CodexPicker(tmp_path / "does-not-exist.jsonl")
    assert picker.list_sessions("", 0) == []


def test_title_utf8_truncation(history):
    cccc = _by_id(CodexPicker(history).list_sessions("", 0), "codex-cccc-0003")
    assert len(cccc.title) == 53
    assert cccc.title.endswith("...")
    assert cccc.title.startswith(LONG_ZH[:10])


def test_sender_context_stripped_from_title(tmp_path):
    path = tmp_path / "history.jsonl"
    path.write_text(
        _entry("s1", 10, "<sender_context>\n{}\n</sender_context>\n\n  real prompt  ") + "\n",
        encoding="utf-8",
    )
    [session] = CodexPicker(path).list_sessions("", 0)
    assert session.title == "real prompt"


def test_non_integer_timestamp_skipped(tmp_path):
    path = tmp_path / "history.jsonl"
    path.write_text(
        "\n".join(
            [
                json.dumps({"session_id": "s1", "ts": 1.5, "text": "float ts"}),
                json.dumps({"session_id": "s2", "ts": True, "text": "bool ts"}),
                json.dumps({"session_id": "s3", "ts": 7, "text": "ok"}),
            ]
        ),
        encoding="utf-8",
    )
    sessions = CodexPicker(path).list_sessions("", 0)
    assert [s.id for s in sessions] == ["s3"]


def test_crlf_line_endings(tmp_path):
    path = tmp_path / "history.jsonl"
    path.write_bytes(
        (_entry("s1", 1, "one") + "\r\n" + _entry("s1", 2, "two") + "\r\n").encode("utf-8")
    )
    [session] = CodexPicker(path).list_sessions("", 0)
    assert session.title == "one"
    assert session.message_count == 2