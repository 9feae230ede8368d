"""Tests for the configuration history and its replay."""

from pathlib import Path

import pytest
from pydantic import TypeAdapter

from yproj.kernel.broker import MappingFieldBroker
from yproj.kernel.history import (
    ConfigurationHistory,
    ExtraData,
    FieldApplied,
    HistoryEntry,
    IncludeDirective,
    LoadState,
    ReplayItem,
    ReplayKind,
)

TOP = Path("/a/b/top.yaml")
SUB = Path("/a/b/sub.yaml")


def _apply(history, broker, record, name, value):
    bridge = broker.find(name)
    bridge.import_value(record, value)
    history.record_field(name, bridge.get_internal(record))


def test_state_machine_transitions():
    history = ConfigurationHistory()
    assert history.state is LoadState.IDLE

    history.begin(TOP)
    assert history.state is LoadState.LOADING
    assert history.current_source == TOP

    history.enter_include("sub.yaml", SUB)
    assert history.state is LoadState.LOADING_INCLUDE
    assert history.current_source == SUB
    assert history.include_depth == 1

    history.leave_include()
    assert history.state is LoadState.LOADING
    assert history.current_source == TOP

    history.finish()
    assert history.state is LoadState.IDLE
    assert history.top_level_source == TOP


def test_begin_resets_entries():
    history = ConfigurationHistory()
    history.begin(TOP)
    history.record_extra("x", 1)
    history.finish()

    history.begin(TOP)
    assert len(history) == 0
    assert history.extra_provenance == {}


def test_recording_requires_a_load():
    history = ConfigurationHistory()
    with pytest.raises(RuntimeError, match="no load in progress"):
        history.record_field("name", "x")
    history.begin(TOP)
    with pytest.raises(RuntimeError, match="already in progress"):
        history.begin(TOP)
    with pytest.raises(RuntimeError):
        history.leave_include()


def test_entries_are_tagged_with_source(record_class):
    broker = MappingFieldBroker.from_class(record_class)
    record = record_class()
    history = ConfigurationHistory()
    history.begin(TOP)
    _apply(history, broker, record, "name", "demo")
    history.enter_include("sub.yaml", SUB)
    history.record_extra("homepage", "http://example.org")
    history.leave_include()
    history.finish()

    assert list(history) == [
        FieldApplied(name="name", source_file=TOP),
        IncludeDirective(target_file="sub.yaml", resolved_path=SUB, source_file=TOP),
        ExtraData(name="homepage", value="http://example.org", source_file=SUB),
    ]
    assert history.provenance["name"].source_file == TOP
    assert history.extra_provenance["homepage"].include_depth == 1


def test_entries_validate_by_kind():
    adapter = TypeAdapter(HistoryEntry)
    entry = adapter.validate_python({"kind": "include_directive", "target_file": "x.yaml"})
    assert isinstance(entry, IncludeDirective)


def test_replay_emits_top_level_entries_in_order(record_class):
    broker = MappingFieldBroker.from_class(record_class)
    record = record_class()
    history = ConfigurationHistory()
    history.begin(TOP)
    _apply(history, broker, record, "version", "1.0")
    history.record_extra("custom", {"a": 1})
    history.enter_include("sub.yaml", SUB)
    _apply(history, broker, record, "name", "from-sub")
    history.leave_include()
    _apply(history, broker, record, "tags", ["x"])
    history.finish()

    record.version = "2.0"  # live value wins over the loaded one
    items = history.replay(broker, record, {"custom": {"a": 1}})
    assert items == [
        ReplayItem(ReplayKind.FIELD, "version", "2.0"),
        ReplayItem(ReplayKind.EXTRA, "custom", {"a": 1}),
        ReplayItem(ReplayKind.INCLUDE, "sub.yaml"),
        ReplayItem(ReplayKind.FIELD, "tags", ["x"]),
    ]


def test_replay_absorbs_edited_included_values(record_class):
    """An edited value from an included file goes to the top-level output."""
    broker = MappingFieldBroker.from_class(record_class)
    record = record_class()
    history = ConfigurationHistory()
    history.begin(TOP)
    history.enter_include("sub.yaml", SUB)
    _apply(history, broker, record, "name", "from-sub")
    _apply(history, broker, record, "version", "1.0")
    history.leave_include()
    history.finish()

    record.name = "edited"
    items = history.replay(broker, record)
    assert items == [
        ReplayItem(ReplayKind.INCLUDE, "sub.yaml"),
        ReplayItem(ReplayKind.FIELD, "name", "edited"),
    ]


def test_replay_without_history_emits_bound_fields(record_class):
    broker = MappingFieldBroker.from_class(record_class)
    record = record_class()
    record.name = "fresh"
    items = ConfigurationHistory().replay(broker, record, {"extra": True})
    assert items == [
        ReplayItem(ReplayKind.FIELD, "name", "fresh"),
        ReplayItem(ReplayKind.EXTRA, "extra", True),
    ]


def test_replay_skips_nested_includes(record_class):
    broker = MappingFieldBroker.from_class(record_class)
    history = ConfigurationHistory()
    history.begin(TOP)
    history.enter_include("sub.yaml", SUB)
    history.enter_include("deeper.yaml", Path("/a/b/deeper.yaml"))
    history.leave_include()
    history.leave_include()
    history.finish()

    assert history.replay(broker, record_class()) == [ReplayItem(ReplayKind.INCLUDE, "sub.yaml")]
    assert [e.target_file for e in history.includes(top_level_only=False)] == ["sub.yaml", "deeper.yaml"]
