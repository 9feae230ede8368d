"""Streaming tree builder: typed records from a YAML event stream.

The generic YAML loaders can only build types that were registered in
advance. This builder consumes parser events one at a time and builds
plain dicts, lists and scalars, except that a mapping whose tag carries
the record prefix (``!record:Foo`` by default) becomes a StructRecord.
The record's StructDescriptor is discovered while parsing: it gains one
field per key seen and is finalized when its last open mapping ends.
Descriptors are looked up by type name so that repeated occurrences of
a type share one descriptor.

Each frame of the parse stack tracks its own key/value alternation, so
records nested inside records parse independently.

Usage:

    builder = StreamingTreeBuilder()
    for event in yaml.parse(text):
        builder.feed(event)
    documents = builder.finish()
"""

import keyword
import logging
import re
from dataclasses import dataclass, field, make_dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml
from yaml.constructor import ConstructorError, SafeConstructor
from yaml.nodes import ScalarNode
from yaml.resolver import Resolver

from yproj.errors import FinalizedStructError, StructureError

logger = logging.getLogger(__name__)

ScalarFactory = Callable[[str], Any]


def parse_record_tag(tag: Optional[str], prefix: str = "record:") -> Tuple[bool, Optional[str]]:
    """Split a record tag into (is_record, type_name).

    A leading ``!`` is ignored. An empty type name (``!record:``) denotes
    an anonymous record and yields ``(True, None)``.
    """
    if not tag:
        return False, None
    bare = tag[1:] if tag.startswith("!") else tag
    if not bare.startswith(prefix):
        return False, None
    name = bare[len(prefix):]
    return True, name or None


def _identifier(name: str) -> str:
    ident = re.sub(r"\W", "_", name)
    if not ident or ident[0].isdigit():
        ident = f"_{ident}"
    if keyword.iskeyword(ident):
        ident = f"{ident}_"
    return ident


class StructDescriptor:
    """Shape of a record type discovered while parsing."""

    def __init__(self, type_name: Optional[str] = None):
        self.type_name = type_name
        self.fields: List[str] = []
        self.finalized = False
        self._open = 0
        self._record_type: Optional[type] = None

    def __repr__(self) -> str:
        state = "finalized" if self.finalized else "open"
        return f"StructDescriptor({self.type_name or '(anonymous)'}, {self.fields!r}, {state})"

    @property
    def field_set(self) -> frozenset:
        return frozenset(self.fields)

    def add_field(self, name: str, depth: int = 0) -> None:
        """Add ``name`` unless it is already known.

        Raises:
            FinalizedStructError: if ``name`` is new and the descriptor is finalized
        """
        if name in self.fields:
            return
        if self.finalized:
            raise FinalizedStructError(self.type_name, name, depth)
        self.fields.append(name)

    def open(self) -> None:
        self._open += 1

    def close(self) -> None:
        self._open -= 1
        if self._open <= 0:
            self._open = 0
            self.finalized = True

    def attribute_names(self) -> Dict[str, str]:
        """Field name -> Python attribute name of the record type."""
        return {name: _identifier(name) for name in self.fields}

    def record_type(self) -> type:
        """Dataclass with one attribute per field (in discovery order), all defaulting to None."""
        if not self.finalized:
            raise StructureError(
                "record_type", 0,
                f"Record type {self.type_name or '(anonymous)'} is not finalized"
            )
        if self._record_type is None:
            attrs = self.attribute_names()
            self._record_type = make_dataclass(
                _identifier(self.type_name or "AnonymousRecord"),
                [(attrs[name], Any, field(default=None)) for name in self.fields],
            )
        return self._record_type


@dataclass(eq=False)
class StructRecord:
    """One record instance: its descriptor and its field values in document order."""
    descriptor: StructDescriptor
    values: Dict[Any, Any] = field(default_factory=dict)
    tag: Optional[str] = None

    @property
    def type_name(self) -> Optional[str]:
        return self.descriptor.type_name

    def materialize(self) -> Any:
        """Instance of ``descriptor.record_type()``; nested records are materialized too."""
        return _materialize(self, {})


def _materialize(node: Any, memo: Dict[int, Any]) -> Any:
    if id(node) in memo:
        return memo[id(node)]
    if isinstance(node, StructRecord):
        obj = node.descriptor.record_type()()
        memo[id(node)] = obj
        attrs = node.descriptor.attribute_names()
        for key, value in node.values.items():
            setattr(obj, attrs[str(key)], _materialize(value, memo))
        return obj
    if isinstance(node, list):
        out: Any = []
        memo[id(node)] = out
        out.extend(_materialize(v, memo) for v in node)
        return out
    if isinstance(node, dict):
        out = {}
        memo[id(node)] = out
        for key, value in node.items():
            out[key] = _materialize(value, memo)
        return out
    return node


_NO_ROOT = object()


@dataclass
class _Frame:
    node: Any  # dict, list or StructRecord
    anchor: Optional[str] = None
    key: Any = None
    expecting_value: bool = False

    @property
    def is_sequence(self) -> bool:
        return isinstance(self.node, list)

    @property
    def record(self) -> Optional[StructRecord]:
        return self.node if isinstance(self.node, StructRecord) else None


class StreamingTreeBuilder:
    """Builds document trees from YAML parser events.

    Args:
        prefix: record tag prefix, without the leading ``!``
        scalar_tags: tag -> factory for application scalar tags
            (e.g. ``!file``); the factory receives the scalar text
    """

    def __init__(self, prefix: str = "record:",
                 scalar_tags: Optional[Mapping[str, ScalarFactory]] = None):
        self.prefix = prefix
        self.scalar_tags = dict(scalar_tags or {})
        self.descriptors: List[StructDescriptor] = []
        self.documents: List[Any] = []
        self._by_name: Dict[str, StructDescriptor] = {}
        self._frames: List[_Frame] = []
        self._anchors: Dict[str, Any] = {}
        self._in_document = False
        self._root: Any = _NO_ROOT
        self._resolver = Resolver()
        self._constructor = SafeConstructor()

    @property
    def depth(self) -> int:
        return len(self._frames)

    def descriptor(self, type_name: str) -> Optional[StructDescriptor]:
        return self._by_name.get(type_name)

    # -- event dispatch ----------------------------------------------------

    def feed(self, event: yaml.Event) -> None:
        """Consume one PyYAML parser event."""
        if isinstance(event, yaml.ScalarEvent):
            self.scalar(event.value, event.tag, event.anchor, event.implicit)
        elif isinstance(event, yaml.MappingStartEvent):
            self.start_mapping(event.tag, event.anchor)
        elif isinstance(event, yaml.MappingEndEvent):
            self.end_mapping()
        elif isinstance(event, yaml.SequenceStartEvent):
            self.start_sequence(event.tag, event.anchor)
        elif isinstance(event, yaml.SequenceEndEvent):
            self.end_sequence()
        elif isinstance(event, yaml.AliasEvent):
            self.alias(event.anchor)
        elif isinstance(event, yaml.DocumentStartEvent):
            self.start_document()
        elif isinstance(event, yaml.DocumentEndEvent):
            self.end_document()
        elif isinstance(event, (yaml.StreamStartEvent, yaml.StreamEndEvent)):
            pass
        else:
            raise StructureError(type(event).__name__, self.depth)

    def consume(self, events: Iterable[yaml.Event]) -> List[Any]:
        """Feed every event, then ``finish()``."""
        for event in events:
            self.feed(event)
        return self.finish()

    def finish(self) -> List[Any]:
        """Return the built documents.

        Raises:
            StructureError: if any mapping, sequence or document is still open
        """
        if self._frames or self._in_document:
            raise StructureError(
                "stream_end", self.depth,
                f"Event stream ended with {self.depth} unclosed frame(s)"
            )
        return self.documents

    # -- documents ---------------------------------------------------------

    def start_document(self) -> None:
        if self._in_document or self._frames:
            raise StructureError("document_start", self.depth)
        self._in_document = True
        self._root = _NO_ROOT
        self._anchors = {}

    def end_document(self) -> None:
        if not self._in_document or self._frames:
            raise StructureError("document_end", self.depth)
        self._in_document = False
        self.documents.append(None if self._root is _NO_ROOT else self._root)
        self._root = _NO_ROOT

    # -- collections -------------------------------------------------------

    def start_mapping(self, tag: Optional[str] = None, anchor: Optional[str] = None) -> None:
        is_record, type_name = parse_record_tag(tag, self.prefix)
        if is_record:
            desc = self._descriptor_for(type_name)
            desc.open()
            node: Any = StructRecord(desc, tag=tag)
        else:
            if tag and tag != "tag:yaml.org,2002:map":
                logger.debug("Ignoring tag %r on mapping", tag)
            node = {}
        self._push(_Frame(node, anchor))

    def end_mapping(self) -> None:
        frame = self._pop("mapping_end", sequence=False)
        record = frame.record
        if record is not None:
            record.descriptor.close()
        self._attach(frame.node, "mapping_end")

    def start_sequence(self, tag: Optional[str] = None, anchor: Optional[str] = None) -> None:
        self._push(_Frame([], anchor))

    def end_sequence(self) -> None:
        frame = self._pop("sequence_end", sequence=True)
        self._attach(frame.node, "sequence_end")

    # -- leaves ------------------------------------------------------------

    def scalar(self, value: str, tag: Optional[str] = None, anchor: Optional[str] = None,
               implicit: Tuple[bool, bool] = (True, False)) -> None:
        """Handle a scalar event.

        Raises:
            StructureError: if no mapping, sequence or document is open
        """
        self._check_open("scalar")
        node = self.construct_scalar(value, tag, implicit)
        if anchor is not None:
            self._anchors[anchor] = node
        self._attach(node, "scalar")

    def alias(self, anchor: str) -> None:
        self._check_open("alias")
        try:
            node = self._anchors[anchor]
        except KeyError:
            raise StructureError("alias", self.depth, f"Found undefined alias {anchor!r}") from None
        self._attach(node, "alias")

    def construct_scalar(self, value: str, tag: Optional[str] = None,
                         implicit: Tuple[bool, bool] = (True, False)) -> Any:
        """Typed value of a scalar, resolved the way the safe loader does."""
        if tag in self.scalar_tags:
            return self.scalar_tags[tag](value)
        if tag is None or tag == "!":
            tag = self._resolver.resolve(ScalarNode, value, implicit)
        construct = SafeConstructor.yaml_constructors.get(tag)
        if construct is None:
            logger.debug("Keeping scalar with unknown tag %r as text", tag)
            return value
        try:
            return construct(self._constructor, ScalarNode(tag, value))
        except (ConstructorError, ValueError) as e:
            raise StructureError("scalar", self.depth, f"Cannot construct {tag} scalar {value!r}: {e}") from e

    # -- stack helpers -----------------------------------------------------

    def _descriptor_for(self, type_name: Optional[str]) -> StructDescriptor:
        if type_name is not None and type_name in self._by_name:
            logger.debug("Reusing record type %s", type_name)
            return self._by_name[type_name]
        desc = StructDescriptor(type_name)
        self.descriptors.append(desc)
        if type_name is not None:
            self._by_name[type_name] = desc
        logger.debug("New record type %s", type_name or "(anonymous)")
        return desc

    def _check_open(self, event: str) -> None:
        if not self._frames and not self._in_document:
            raise StructureError(event, self.depth)

    def _push(self, frame: _Frame) -> None:
        if frame.anchor is not None:
            self._anchors[frame.anchor] = frame.node
        self._frames.append(frame)

    def _pop(self, event: str, sequence: bool) -> _Frame:
        if not self._frames or self._frames[-1].is_sequence is not sequence:
            raise StructureError(event, self.depth)
        frame = self._frames[-1]
        if frame.expecting_value:
            raise StructureError(
                event, self.depth, f"Mapping closed before a value for key {frame.key!r}"
            )
        return self._frames.pop()

    def _attach(self, node: Any, event: str) -> None:
        """Place a completed node into the innermost open frame."""
        if not self._frames:
            if self._in_document:
                if self._root is not _NO_ROOT:
                    raise StructureError(event, 0, "Document already has a root node")
                self._root = node
            else:
                self.documents.append(node)
            return

        frame = self._frames[-1]
        if frame.is_sequence:
            frame.node.append(node)
            return
        if not frame.expecting_value:
            record = frame.record
            if record is not None:
                if isinstance(node, (dict, list, StructRecord)):
                    raise StructureError(event, self.depth, "Record field names must be scalars")
                # the key object is kept; the descriptor indexes it by name
                record.descriptor.add_field(str(node), self.depth)
            else:
                try:
                    hash(node)
                except TypeError:
                    raise StructureError(event, self.depth, "Found unhashable mapping key") from None
            frame.key = node
            frame.expecting_value = True
            return

        if frame.record is not None:
            frame.record.values[frame.key] = node
        else:
            frame.node[frame.key] = node
        frame.key = None
        frame.expecting_value = False


def build_documents(text: str, prefix: str = "record:",
                    scalar_tags: Optional[Mapping[str, ScalarFactory]] = None) -> List[Any]:
    """Parse YAML ``text`` into document trees."""
    builder = StreamingTreeBuilder(prefix, scalar_tags)
    return builder.consume(yaml.parse(text))
