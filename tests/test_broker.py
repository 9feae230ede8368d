"""Tests for FieldBroker registration, lookup and bulk operations."""

import logging
import threading

import pytest

from yproj.errors import DuplicateFieldError, FieldBridgeNotFound
from yproj.kernel.accessors import AttributeAccessor, KeyAccessor
from yproj.kernel.broker import FieldBroker, MappingFieldBroker, broker_for
from yproj.kernel.fields import FieldKind, redefine
from yproj.settings import BrokerOptions


class Target:
    pass


def test_find_without_bridge_raises_naming_field(record_class):
    broker = MappingFieldBroker.from_class(record_class)
    with pytest.raises(FieldBridgeNotFound, match="'missing'") as excinfo:
        broker.find("missing")
    assert excinfo.value.field == "missing"
    assert isinstance(excinfo.value, KeyError)


def test_find_with_fallback_returns_its_result(record_class):
    """The fallback receives the broker and the name and does not raise."""
    broker = MappingFieldBroker.from_class(record_class)
    result = broker.find("missing", fallback=lambda b, name: (b, name))
    assert result == (broker, "missing")


def test_register_replaces_by_default(record_class, caplog):
    broker = MappingFieldBroker(record_class)
    first = broker.register("name")
    with caplog.at_level(logging.WARNING, logger="yproj.kernel.broker"):
        second = broker.register("name", external_name="title")
    assert broker.find("name") is second is not first
    assert broker.find_external("title") is second
    with pytest.raises(FieldBridgeNotFound):
        broker.find_external("name")
    assert "Replacing field bridge" in caplog.text


def test_register_error_policy(record_class):
    broker = MappingFieldBroker(record_class, options=BrokerOptions(overwrite="error"))
    broker.register("name")
    with pytest.raises(DuplicateFieldError, match="already registered"):
        broker.register("name", external_name="title")


def test_identical_registration_is_a_noop(record_class):
    broker = MappingFieldBroker(record_class, options=BrokerOptions(overwrite="error"))
    first = broker.register("name")
    assert broker.register("name") is first
    assert len(broker) == 1


def test_import_and_export_mapped_follow_registration_order(record_class):
    broker = FieldBroker(record_class, Target)
    broker.register("version")
    broker.register("name")
    broker.register("tags", FieldKind.SEQUENCE)

    source = Target()
    source.name = "demo"
    source.version = "1.0"
    source.tags = ["x"]
    record = record_class()
    broker.import_mapped(source, record)
    assert (record.name, record.version, record.tags) == ("demo", "1.0", ["x"])

    del record.version
    out = Target()
    assert broker.export_mapped(record, out) == ["name", "tags"]
    assert not hasattr(out, "version")
    assert [b.name for b in broker] == ["version", "name", "tags"]


def test_mapping_import_routes_unknown_keys(record_class):
    broker = MappingFieldBroker.from_class(record_class)
    record = record_class()
    extras = {}
    broker.import_mapped(
        {"tags": ["a"], "other": 1, "name": "demo", 5: "five"},
        record,
        on_extra=extras.__setitem__,
    )
    assert record.name == "demo"
    assert record.tags == ["a"]
    assert extras == {"other": 1, 5: "five"}

    with pytest.raises(FieldBridgeNotFound, match="'other'"):
        broker.import_mapped({"other": 1}, record_class())


def test_mapping_export_returns_new_mapping(record_class):
    broker = MappingFieldBroker.from_class(record_class)
    record = record_class()
    record.name = "demo"
    record.options = {"a": 1}
    assert broker.export_mapped(record) == {"name": "demo", "options": {"a": 1}}


def test_custom_accessors(record_class):
    broker = FieldBroker(record_class, dict)
    broker.register("name", internal=AttributeAccessor("title"), external=KeyAccessor("Name"))
    record = record_class()
    broker.import_field("name", {"Name": "demo"}, record)
    assert record.title == "demo"
    out = {}
    broker.export_field("name", record, out)
    assert out == {"Name": "demo"}


def test_broker_for_caches_by_generation(record_class):
    first = broker_for(record_class)
    assert broker_for(record_class) is first
    assert "tags" in first

    record_class.SERIALIZE_FIELDS = ("name",)
    redefine(record_class)
    rebuilt = broker_for(record_class)
    assert rebuilt is not first
    assert rebuilt.names() == ["name"]


def test_broker_for_separates_options(record_class):
    strict = broker_for(record_class, options=BrokerOptions(validate_kinds=True))
    assert strict is not broker_for(record_class)
    assert strict.find("tags").validate


def test_broker_for_rejects_non_mapping_external(record_class):
    with pytest.raises(TypeError):
        broker_for(record_class, Target)


def test_broker_for_first_use_from_threads(record_class):
    results = []
    threads = [threading.Thread(target=lambda: results.append(broker_for(record_class)))
               for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len({id(b) for b in results}) == 1
