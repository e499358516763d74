"""Tests for the directory-backed conversation store."""

from __future__ import annotations

import os
from pathlib import Path

from scopeassist.chat import ConversationStore
from scopeassist.chat.store import sanitize_file_name


def test_sanitize_file_name() -> None:
    assert sanitize_file_name("Blob count: v2/final") == "Blob_count__v2_final"


def test_save_changed_writes_only_grown_conversations(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path)
    first = store.create("first", "sys")
    second = store.create("second", "sys")

    assert sorted(store.save_changed()) == ["first", "second"]
    assert store.save_changed() == []

    second.append_user("hello")

    assert store.save_changed() == ["second"]
    assert store.path_for("first").exists()
    assert first.name == "first"


def test_load_all_orders_newest_first_and_skips_corrupt(tmp_path: Path, caplog) -> None:
    writer = ConversationStore(tmp_path)
    old = writer.create("old", "sys")
    new = writer.create("new", "sys")
    writer.save(old)
    writer.save(new)
    os.utime(writer.path_for("old"), (1_000_000, 1_000_000))
    os.utime(writer.path_for("new"), (2_000_000, 2_000_000))
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "unknown.json").write_text(
        '{"name": "u", "messages": [{"displayMessage": null, "memoryMessage": {"type": "NOPE"}}]}',
        encoding="utf-8",
    )
    (tmp_path / "bad_calls.json").write_text(
        '{"name": "b", "messages": [{"displayMessage": "x", "memoryMessage": {"type": "AI", "content": "x", "toolCalls": 1}}]}',
        encoding="utf-8",
    )

    reader = ConversationStore(tmp_path)
    with caplog.at_level("WARNING"):
        loaded = reader.load_all()

    assert [conversation.name for conversation in loaded] == ["new", "old"]
    assert reader.names() == ["new", "old"]
    assert "broken.json" in caplog.text
    assert "toolCalls must be a list" in caplog.text
    assert reader.save_changed() == []


def test_load_all_on_missing_directory(tmp_path: Path) -> None:
    assert ConversationStore(tmp_path / "missing").load_all() == []


def test_delete_removes_file(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path)
    conversation = store.create("gone", "sys")
    store.save(conversation)

    assert store.delete("gone")
    assert not store.path_for("gone").exists()
    assert store.get("gone") is None
    assert not store.delete("gone")


def test_save_leaves_no_temporary_files(tmp_path: Path) -> None:
    store = ConversationStore(tmp_path)
    store.save(store.create("tidy", "sys"))

    assert sorted(path.name for path in tmp_path.iterdir()) == ["tidy.json"]
