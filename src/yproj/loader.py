"""Configuration loader: documents in, records out, and back again.

Loading dispatches the keys of the top-level mapping in document order:

- the include key (``include:`` or ``!ext include:``) splices in each
  named document, resolved relative to the including document's
  directory, before the next key is read;
- a key with a registered bridge is imported onto the record at once
  (scalars: last value wins; sequences and mappings accumulate);
- any other key is captured as extra data on the record.

Every step is logged in the record's ConfigurationHistory. Dumping
replays that history for the top-level document only: include
directives are written back as include markers and included files are
never modified.
"""

import copy
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Union

from yproj._internal.io.yaml_io import (
    ExtScalar,
    IncludeFile,
    dump_document,
    parse_documents,
    read_text,
)
from yproj.errors import DocumentError, UnresolvedIncludeError
from yproj.kernel.broker import FieldBroker, broker_for
from yproj.kernel.history import ConfigurationHistory, ReplayItem, ReplayKind
from yproj.kernel.tree_builder import StructRecord, parse_record_tag
from yproj.settings import DumpOptions, LoaderOptions

logger = logging.getLogger(__name__)

HISTORY_ATTR = "config_history"
DEFAULT_EXTRA_FIELD = "extra_conf_data"


class ConfigLoader:
    """Loads and dumps instances of ``record_class``.

    The record class declares its fields in ``SERIALIZE_FIELDS``. It may
    also set ``EXTRA_FIELD`` (attribute receiving unrecognized keys,
    default ``extra_conf_data``) and ``YAML_TAG`` (record tag accepted on
    the top-level mapping, e.g. ``record:Project``).
    """

    def __init__(self, record_class: type, options: Optional[LoaderOptions] = None,
                 broker: Optional[FieldBroker] = None):
        self.record_class = record_class
        self.options = options or LoaderOptions()
        self.broker = broker or broker_for(record_class, dict, self.options.broker)
        self.extra_field = getattr(record_class, "EXTRA_FIELD", DEFAULT_EXTRA_FIELD)

    def __repr__(self) -> str:
        return f"ConfigLoader({self.record_class.__name__})"

    # -- record helpers ----------------------------------------------------

    def history_for(self, instance: Any) -> ConfigurationHistory:
        history = getattr(instance, HISTORY_ATTR, None)
        if history is None:
            history = ConfigurationHistory()
            setattr(instance, HISTORY_ATTR, history)
        return history

    def extras(self, instance: Any, create: bool = True) -> Optional[Dict[Any, Any]]:
        """The instance's extra-data mapping (created empty when ``create``)."""
        data = getattr(instance, self.extra_field, None)
        if data is None and create:
            data = {}
            setattr(instance, self.extra_field, data)
        return data

    # -- loading -----------------------------------------------------------

    def load_file(self, path: Union[str, Path], instance: Any = None) -> Any:
        """Load the document at ``path`` into ``instance`` (a new record by default).

        Raises:
            DocumentError: if the file cannot be read or is not a mapping
            UnresolvedIncludeError: if an include target is missing
            StructureError: on an inconsistent YAML event stream
        """
        path = Path(path).expanduser().resolve()
        text = read_text(path, self.options.encoding)
        return self._load(text, path, path.parent, instance)

    def load_stream(self, stream: Union[str, IO[str]], instance: Any = None,
                    source: Optional[Union[str, Path]] = None) -> Any:
        """Load a document from text or a text stream.

        Relative includes resolve against the directory of ``source``, or
        the working directory when no source is given.
        """
        text = stream if isinstance(stream, str) else stream.read()
        src = Path(source).expanduser().resolve() if source is not None else None
        basedir = src.parent if src is not None else Path.cwd()
        return self._load(text, src, basedir, instance)

    def _load(self, text: str, source: Optional[Path], basedir: Path, instance: Any) -> Any:
        if instance is None:
            instance = self.record_class()
        history = self.history_for(instance)
        history.begin(source)
        logger.debug("Loading %s into %r", source or "<stream>", instance)
        try:
            mapping = self._document_mapping(text, source, allow_empty=False)
            self._dispatch(mapping, instance, history, basedir, [source] if source else [])
        except Exception:
            history.abort()
            raise
        history.finish()
        return instance

    def _document_mapping(self, text: str, source: Optional[Path], allow_empty: bool) -> Mapping:
        label = source or "<stream>"
        docs = parse_documents(text, label, self.options.record_tag_prefix)
        doc = docs[0] if docs else None
        if len(docs) > 1:
            logger.warning("Ignoring %d extra document(s) in %s", len(docs) - 1, label)
        if doc is None:
            if allow_empty:
                return {}
            raise DocumentError(label, "document is empty")
        if isinstance(doc, StructRecord):
            expected = self._record_type_name()
            if doc.type_name is not None and doc.type_name not in expected:
                raise DocumentError(
                    label, f"expected a {self.record_class.__name__} record, found {doc.type_name}"
                )
            return doc.values
        if not isinstance(doc, Mapping):
            raise DocumentError(label, f"top-level node must be a mapping, found {type(doc).__name__}")
        return doc

    def _record_type_name(self) -> List[str]:
        names = [self.record_class.__name__]
        is_record, name = parse_record_tag(getattr(self.record_class, "YAML_TAG", None),
                                           self.options.record_tag_prefix)
        if is_record and name:
            names.append(name)
        return names

    def _dispatch(self, mapping: Mapping, instance: Any, history: ConfigurationHistory,
                  basedir: Path, stack: List[Path]) -> None:
        for key, value in mapping.items():
            if self._is_include_key(key):
                for target in self._include_targets(value, history.current_source):
                    self._include(target, instance, history, basedir, stack)
            elif key == self.extra_field and isinstance(value, Mapping):
                for extra_key, extra_value in value.items():
                    self._capture_extra(extra_key, extra_value, instance, history)
            else:
                bridge = None
                if isinstance(key, str):
                    bridge = self.broker.find_external(key, fallback=lambda broker, name: None)
                if bridge is None:
                    self._capture_extra(key, value, instance, history)
                    continue
                bridge.import_value(instance, value)
                history.record_field(bridge.name, bridge.get_internal(instance))
                logger.debug("Applied %r from %s", bridge.name, history.current_source or "<stream>")

    def _capture_extra(self, key: Any, value: Any, instance: Any,
                       history: ConfigurationHistory) -> None:
        self.extras(instance)[key] = value
        history.record_extra(key, value)
        logger.debug("Captured extra key %r from %s", key, history.current_source or "<stream>")

    def _is_include_key(self, key: Any) -> bool:
        if isinstance(key, IncludeFile):
            return False
        if isinstance(key, ExtScalar):
            return key.value == self.options.include_key
        return key == self.options.include_key

    def _include_targets(self, value: Any, source: Optional[Path]) -> List[str]:
        values = value if isinstance(value, list) else [value]
        targets = []
        for item in values:
            if isinstance(item, ExtScalar):
                item = item.value
            if not isinstance(item, str) or not item:
                raise UnresolvedIncludeError(item, source or "<stream>",
                                             "include value must be a path or a list of paths")
            targets.append(item)
        return targets

    def _include(self, target: str, instance: Any, history: ConfigurationHistory,
                 basedir: Path, stack: List[Path]) -> None:
        source = history.current_source or "<stream>"
        resolved = IncludeFile(target).resolve(basedir).resolve()
        if resolved in stack:
            raise UnresolvedIncludeError(target, source, "include cycle")
        if not resolved.is_file():
            raise UnresolvedIncludeError(target, source, f"no such file {str(resolved)!r}")
        try:
            text = read_text(resolved, self.options.encoding)
        except DocumentError as e:
            raise UnresolvedIncludeError(target, source, e.reason) from e

        history.enter_include(target, resolved)
        mapping = self._document_mapping(text, resolved, allow_empty=True)
        self._dispatch(mapping, instance, history, resolved.parent, stack + [resolved])
        history.leave_include()

    # -- dumping -----------------------------------------------------------

    def replay(self, instance: Any) -> List[ReplayItem]:
        history = getattr(instance, HISTORY_ATTR, None) or ConfigurationHistory()
        return history.replay(self.broker, instance, self.extras(instance, create=False))

    def to_document(self, instance: Any, options: Optional[DumpOptions] = None) -> Dict[Any, Any]:
        """Mapping to write back for ``instance``'s top-level document."""
        opts = options or DumpOptions()
        include_key = self.options.include_key
        out: Dict[Any, Any] = {}
        plain_includes: List[str] = []
        for item in self.replay(instance):
            if item.kind is ReplayKind.FIELD:
                self.broker.find(item.name).export_value(out, item.value)
            elif item.kind is ReplayKind.EXTRA:
                out[item.name] = copy.deepcopy(item.value)
            elif opts.include_tags:
                out[ExtScalar(include_key)] = IncludeFile(item.name)
            else:
                if not plain_includes:
                    out[include_key] = None  # holds the position of the first include
                plain_includes.append(item.name)
        if plain_includes:
            out[include_key] = plain_includes[0] if len(plain_includes) == 1 else plain_includes
        return out

    def dump(self, instance: Any, options: Optional[DumpOptions] = None) -> str:
        return dump_document(self.to_document(instance, options), options)

    def write_file(self, instance: Any, path: Union[str, Path],
                   options: Optional[DumpOptions] = None) -> Path:
        path = Path(path)
        path.write_text(self.dump(instance, options), encoding="utf-8")
        logger.debug("Wrote %r to %s", instance, path)
        return path
