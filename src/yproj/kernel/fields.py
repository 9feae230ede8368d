"""Field descriptors: one named, typed field of a record class.

A record class declares its serializable fields in ``SERIALIZE_FIELDS``:

    class Project:
        SERIALIZE_FIELDS = ("name", ("authors", "sequence"), ("metadata", "mapping"))

A bare name declares a scalar field. Descriptors are built once per class
generation; ``redefine()`` bumps the generation after the declaration has
been changed in place, so cached descriptors and brokers are rebuilt.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple, Union
from weakref import WeakKeyDictionary

from yproj.errors import DuplicateFieldError

logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    """Shape of a field value."""
    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"

    def accepts(self, value: Any) -> bool:
        """Return True if ``value`` has the shape this kind declares."""
        if self is FieldKind.SEQUENCE:
            return isinstance(value, (list, tuple))
        if self is FieldKind.MAPPING:
            return isinstance(value, Mapping)
        return not isinstance(value, (list, tuple, set, Mapping))


@dataclass(frozen=True)
class FieldDescriptor:
    """Metadata for one field of ``owning_class``."""
    name: str
    kind: FieldKind
    owning_class: type
    generation: int = 0


FieldDeclaration = Union[str, Tuple[str, str]]

_lock = threading.Lock()
_generations: "WeakKeyDictionary[type, int]" = WeakKeyDictionary()
_descriptors: "WeakKeyDictionary[type, Tuple[int, Dict[str, FieldDescriptor]]]" = WeakKeyDictionary()


def generation(cls: type) -> int:
    """Current declaration generation of ``cls`` (0 until redefined)."""
    return _generations.get(cls, 0)


def redefine(cls: type) -> int:
    """Mark the field declarations of ``cls`` as changed.

    Returns the new generation. Descriptors and brokers cached for older
    generations are not reused.
    """
    with _lock:
        gen = _generations.get(cls, 0) + 1
        _generations[cls] = gen
        _descriptors.pop(cls, None)
    logger.debug("Redefined %s (generation %d)", cls.__name__, gen)
    return gen


def parse_declaration(owning_class: type, datum: FieldDeclaration, gen: int = 0) -> FieldDescriptor:
    """Build a FieldDescriptor from one ``SERIALIZE_FIELDS`` element."""
    if isinstance(datum, str):
        return FieldDescriptor(datum, FieldKind.SCALAR, owning_class, gen)
    if isinstance(datum, (tuple, list)) and len(datum) == 2:
        name, kind = datum
        try:
            return FieldDescriptor(str(name), FieldKind(kind), owning_class, gen)
        except ValueError:
            raise ValueError(f"Unsupported field kind {kind!r} in {datum!r}") from None
    raise ValueError(f"Unsupported field declaration {datum!r} in {owning_class.__name__}")


def field_descriptors(cls: type) -> Dict[str, FieldDescriptor]:
    """Descriptors for ``cls.SERIALIZE_FIELDS``, in declaration order.

    Raises:
        DuplicateFieldError: if a field name is declared twice
    """
    gen = generation(cls)
    cached = _descriptors.get(cls)
    if cached is not None and cached[0] == gen:
        return cached[1]

    declared = getattr(cls, "SERIALIZE_FIELDS", ())
    descs: Dict[str, FieldDescriptor] = {}
    for datum in declared:
        desc = parse_declaration(cls, datum, gen)
        if desc.name in descs:
            raise DuplicateFieldError(desc.name, cls.__name__)
        descs[desc.name] = desc

    with _lock:
        _descriptors[cls] = (gen, descs)
    logger.debug("Built %d field descriptors for %s", len(descs), cls.__name__)
    return descs
