"""Field bridges: copy one field between an internal and an external object.

A bridge pairs a FieldDescriptor with an internal accessor (the record)
and an external accessor (a mapping, a package spec, ...).

- ``import_from(external, internal)`` reads the external value and writes
  it onto the internal object.
- ``export_to(internal, external)`` is the mirror operation. When the
  internal value is unset, nothing is written and NOT_EXPORTED is
  returned.

Sequence and mapping bridges accumulate: importing twice appends
elements / merges key-value pairs rather than replacing the collection.
"""

import copy
from collections.abc import Mapping
from typing import Any, Callable, Optional

from yproj.errors import FieldKindError, UnboundFieldError
from yproj.kernel.accessors import Accessor
from yproj.kernel.fields import FieldDescriptor, FieldKind


Fallback = Callable[[Any, str], Any]


class _NotExported:
    """Sentinel returned by export when the internal value is unset."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_EXPORTED"


NOT_EXPORTED = _NotExported()


class FieldBridge:
    """Bridge for a scalar field."""

    kind = FieldKind.SCALAR

    def __init__(
        self,
        descriptor: FieldDescriptor,
        internal: Accessor,
        external: Accessor,
        external_name: Optional[str] = None,
        fallback: Optional[Fallback] = None,
        validate: bool = False,
    ):
        if descriptor.kind is not self.kind:
            raise ValueError(
                f"{type(self).__name__} cannot bridge {descriptor.kind.value} field {descriptor.name!r}"
            )
        self.descriptor = descriptor
        self.internal = internal
        self.external = external
        self.external_name = external_name or descriptor.name
        self.fallback = fallback
        self.validate = validate

    @property
    def name(self) -> str:
        return self.descriptor.name

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self.name!r}, internal={self.internal!r}, "
                f"external={self.external!r})")

    def same_binding(self, other: "FieldBridge") -> bool:
        """True if ``other`` would behave identically to this bridge."""
        return (
            type(other) is type(self)
            and other.descriptor.name == self.descriptor.name
            and other.internal == self.internal
            and other.external == self.external
            and other.external_name == self.external_name
        )

    def _read(self, accessor: Accessor, instance: Any, fallback: Optional[Fallback]) -> Any:
        try:
            return accessor.get(instance)
        except UnboundFieldError:
            handler = fallback or self.fallback
            if handler is None:
                raise
            return handler(instance, self.name)

    def _check(self, value: Any) -> None:
        if self.validate and not self.kind.accepts(value):
            raise FieldKindError(self.name, self.kind.value, value)

    def value_in(self, internal_inst: Any) -> bool:
        """True if the field is bound on ``internal_inst``."""
        return self.internal.has(internal_inst)

    def get_internal(self, internal_inst: Any, fallback: Optional[Fallback] = None) -> Any:
        return self._read(self.internal, internal_inst, fallback)

    def get_external(self, external_inst: Any, fallback: Optional[Fallback] = None) -> Any:
        return self._read(self.external, external_inst, fallback)

    def import_value(self, internal_inst: Any, value: Any) -> None:
        """Write ``value`` onto ``internal_inst``."""
        self._check(value)
        self.internal.set(internal_inst, value)

    def import_from(self, external_inst: Any, internal_inst: Any,
                    fallback: Optional[Fallback] = None) -> None:
        value = self.get_external(external_inst, fallback)
        self.import_value(internal_inst, value)

    def export_value(self, external_inst: Any, value: Any) -> None:
        self.external.set(external_inst, value)

    def export_to(self, internal_inst: Any, external_inst: Any,
                  fallback: Optional[Fallback] = None) -> Any:
        """Copy the internal value onto ``external_inst``.

        Returns the exported value, or NOT_EXPORTED when the field is unset
        on ``internal_inst``.
        """
        if not self.value_in(internal_inst) and (fallback or self.fallback) is None:
            return NOT_EXPORTED
        value = self.get_internal(internal_inst, fallback)
        self.export_value(external_inst, value)
        return value


class SequenceFieldBridge(FieldBridge):
    """Bridge for a list-valued field.

    With ``unique=True`` elements already present on the receiving side
    are not added again.
    """

    kind = FieldKind.SEQUENCE

    def __init__(self, *args, unique: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.unique = unique

    def import_value(self, internal_inst: Any, value: Any) -> None:
        self._check(value)
        if isinstance(value, (list, tuple)):
            if not self.internal.has(internal_inst):
                self.internal.set(internal_inst, [])
            for elt in value:
                self.internal.append(internal_inst, copy.deepcopy(elt), self.unique)
        else:
            # not validated: written through as-is
            self.internal.set(internal_inst, value)

    def export_value(self, external_inst: Any, value: Any) -> None:
        if not isinstance(value, (list, tuple)):
            self.external.set(external_inst, value)
            return
        if not self.external.has(external_inst):
            self.external.set(external_inst, [])
        for elt in value:
            self.external.append(external_inst, copy.deepcopy(elt), self.unique)


class MappingFieldBridge(FieldBridge):
    """Bridge for a dict-valued field. Imports merge key by key."""

    kind = FieldKind.MAPPING

    def import_value(self, internal_inst: Any, value: Any) -> None:
        self._check(value)
        if isinstance(value, Mapping):
            if not self.internal.has(internal_inst):
                self.internal.set(internal_inst, {})
            for key, val in value.items():
                self.internal.store(internal_inst, key, copy.deepcopy(val))
        else:
            # not validated: written through as-is
            self.internal.set(internal_inst, value)

    def export_value(self, external_inst: Any, value: Any) -> None:
        if not isinstance(value, Mapping):
            self.external.set(external_inst, value)
            return
        if not self.external.has(external_inst):
            self.external.set(external_inst, {})
        for key, val in value.items():
            self.external.store(external_inst, key, copy.deepcopy(val))


BRIDGE_CLASSES = {
    FieldKind.SCALAR: FieldBridge,
    FieldKind.SEQUENCE: SequenceFieldBridge,
    FieldKind.MAPPING: MappingFieldBridge,
}


def make_bridge(descriptor: FieldDescriptor, internal: Accessor, external: Accessor,
                unique: bool = False, **kwargs) -> FieldBridge:
    """Create the bridge class matching ``descriptor.kind``."""
    bridge_class = BRIDGE_CLASSES[descriptor.kind]
    if bridge_class is SequenceFieldBridge:
        return bridge_class(descriptor, internal, external, unique=unique, **kwargs)
    return bridge_class(descriptor, internal, external, **kwargs)
