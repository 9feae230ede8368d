"""Field brokers: the registry of field bridges for one internal class.

A FieldBroker maps field names to bridges for one (internal class,
external class) pairing and copies values for all of them at once.
MappingFieldBroker pairs the internal class with plain dict mappings,
as read from or written to YAML documents.

``broker_for()`` returns a cached mapping broker built from the class's
``SERIALIZE_FIELDS``; the cache is keyed by the class generation (see
``yproj.kernel.fields.redefine``).
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from yproj.errors import DuplicateFieldError, FieldBridgeNotFound
from yproj.kernel.accessors import Accessor, AttributeAccessor, KeyAccessor
from yproj.kernel.bridge import NOT_EXPORTED, Fallback, FieldBridge, make_bridge
from yproj.kernel.fields import FieldDescriptor, FieldKind, field_descriptors, generation
from yproj.settings import BrokerOptions

logger = logging.getLogger(__name__)


class FieldBroker:
    """Bridges for one internal class, keyed by field name."""

    def __init__(self, internal_class: type, external_class: type = object,
                 options: Optional[BrokerOptions] = None):
        self.internal_class = internal_class
        self.external_class = external_class
        self.options = options or BrokerOptions()
        self._bridges: Dict[str, FieldBridge] = {}
        self._external_index: Dict[str, FieldBridge] = {}

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self.internal_class.__name__} <-> "
                f"{self.external_class.__name__})")

    def __contains__(self, name: object) -> bool:
        return name in self._bridges

    def __iter__(self) -> Iterator[FieldBridge]:
        return iter(list(self._bridges.values()))

    def __len__(self) -> int:
        return len(self._bridges)

    def names(self) -> List[str]:
        """Registered field names, in registration order."""
        return list(self._bridges)

    def default_external(self, external_name: str) -> Accessor:
        return AttributeAccessor(external_name)

    def register(
        self,
        name: str,
        kind: FieldKind = FieldKind.SCALAR,
        internal: Optional[Accessor] = None,
        external: Optional[Accessor] = None,
        *,
        external_name: Optional[str] = None,
        fallback: Optional[Fallback] = None,
        unique: bool = False,
    ) -> FieldBridge:
        """Create a bridge for ``name`` and store it.

        Internal storage defaults to an attribute of the same name, external
        storage to ``default_external(external_name or name)``.

        Raises:
            DuplicateFieldError: if a different bridge is already registered
                under ``name`` and the overwrite policy is "error"
        """
        kind = FieldKind(kind)
        ext_name = external_name or name
        descriptor = FieldDescriptor(name, kind, self.internal_class, generation(self.internal_class))
        bridge = make_bridge(
            descriptor,
            internal or AttributeAccessor(name),
            external or self.default_external(ext_name),
            unique=unique,
            external_name=ext_name,
            fallback=fallback,
            validate=self.options.validate_kinds,
        )
        return self.add_bridge(bridge)

    def add_bridge(self, bridge: FieldBridge) -> FieldBridge:
        """Store a prebuilt bridge, applying the overwrite policy."""
        existing = self._bridges.get(bridge.name)
        if existing is not None:
            if existing.same_binding(bridge):
                return existing
            if self.options.overwrite == "error":
                raise DuplicateFieldError(
                    bridge.name, self,
                    f"A field bridge is already registered for {bridge.name!r} in {self!r}"
                )
            logger.warning("Replacing field bridge for %r in %r", bridge.name, self)
            if self._external_index.get(existing.external_name) is existing:
                del self._external_index[existing.external_name]
        self._bridges[bridge.name] = bridge
        self._external_index[bridge.external_name] = bridge
        logger.debug("Registered %r in %r", bridge, self)
        return bridge

    def unregister(self, name: str) -> Optional[FieldBridge]:
        bridge = self._bridges.pop(name, None)
        if bridge is not None and self._external_index.get(bridge.external_name) is bridge:
            del self._external_index[bridge.external_name]
        return bridge

    def find(self, name: str, fallback: Optional[Callable[["FieldBroker", str], Any]] = None) -> Any:
        """Return the bridge for ``name``.

        If none is registered, return ``fallback(self, name)`` when a
        fallback is given, else raise FieldBridgeNotFound.
        """
        bridge = self._bridges.get(name)
        if bridge is not None:
            return bridge
        if fallback is not None:
            return fallback(self, name)
        raise FieldBridgeNotFound(name, self)

    def find_external(self, external_name: str,
                      fallback: Optional[Callable[["FieldBroker", str], Any]] = None) -> Any:
        """Like ``find``, by the field's external name."""
        bridge = self._external_index.get(external_name)
        if bridge is not None:
            return bridge
        if fallback is not None:
            return fallback(self, external_name)
        raise FieldBridgeNotFound(
            external_name, self,
            f"Found no field bridge for external field {external_name!r} in {self!r}"
        )

    def import_field(self, name: str, external_inst: Any, internal_inst: Any) -> None:
        self.find(name).import_from(external_inst, internal_inst)

    def export_field(self, name: str, internal_inst: Any, external_inst: Any) -> Any:
        return self.find(name).export_to(internal_inst, external_inst)

    def import_mapped(self, external_inst: Any, internal_inst: Any) -> None:
        """Import every registered field, in registration order."""
        for bridge in self:
            bridge.import_from(external_inst, internal_inst)

    def export_mapped(self, internal_inst: Any, external_inst: Any) -> List[str]:
        """Export every bound field, in registration order.

        Returns the names of the fields that were exported.
        """
        exported = []
        for bridge in self:
            if bridge.export_to(internal_inst, external_inst) is not NOT_EXPORTED:
                exported.append(bridge.name)
        return exported


class MappingFieldBroker(FieldBroker):
    """Broker between an internal class and dict mappings keyed by external name."""

    def __init__(self, internal_class: type, external_class: type = dict,
                 options: Optional[BrokerOptions] = None):
        super().__init__(internal_class, external_class, options)

    def default_external(self, external_name: str) -> Accessor:
        return KeyAccessor(external_name)

    @classmethod
    def from_class(cls, internal_class: type, options: Optional[BrokerOptions] = None,
                   unique_sequences: bool = True) -> "MappingFieldBroker":
        """Build a broker with one bridge per ``SERIALIZE_FIELDS`` entry."""
        broker = cls(internal_class, options=options)
        for desc in field_descriptors(internal_class).values():
            broker.register(desc.name, desc.kind, unique=unique_sequences)
        return broker

    def import_mapped(self, mapping: Mapping, internal_inst: Any,
                      on_extra: Optional[Callable[[Any, Any], None]] = None) -> None:
        """Import each key of ``mapping``, in mapping order.

        Keys without a bridge go to ``on_extra(key, value)``; with no
        ``on_extra`` they raise FieldBridgeNotFound.
        """
        for key, value in mapping.items():
            bridge = self._external_index.get(key) if isinstance(key, str) else None
            if bridge is not None:
                bridge.import_value(internal_inst, value)
            elif on_extra is not None:
                on_extra(key, value)
            else:
                raise FieldBridgeNotFound(
                    str(key), self,
                    f"No field bridge found for external key {key!r} in {self!r} "
                    f"and no extra-data handler provided"
                )

    def export_mapped(self, internal_inst: Any, mapping: Optional[dict] = None) -> dict:
        """Export bound fields into ``mapping`` (a new dict by default)."""
        out = {} if mapping is None else mapping
        super().export_mapped(internal_inst, out)
        return out


_cache_lock = threading.Lock()
_broker_cache: Dict[Tuple[type, int, type, BrokerOptions], FieldBroker] = {}


def broker_for(internal_class: type, external_class: type = dict,
               options: Optional[BrokerOptions] = None) -> FieldBroker:
    """Cached broker built from ``internal_class.SERIALIZE_FIELDS``.

    Only dict-like external classes are built automatically; register
    bridges on a FieldBroker directly for other external classes.
    """
    opts = options or BrokerOptions()
    key = (internal_class, generation(internal_class), external_class, opts)
    with _cache_lock:
        broker = _broker_cache.get(key)
        if broker is not None:
            return broker
        if not issubclass(external_class, Mapping):
            raise TypeError(f"No automatic broker for external class {external_class.__name__}")
        stale = [k for k in _broker_cache if k[0] is internal_class and k[1] != key[1]]
        for k in stale:
            del _broker_cache[k]
        if stale:
            logger.debug("Dropped %d stale brokers for %s", len(stale), internal_class.__name__)
        broker = MappingFieldBroker.from_class(internal_class, opts)
        _broker_cache[key] = broker
        return broker
