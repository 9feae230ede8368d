"""Configuration history: an ordered log of where each loaded value came from.

A load pass appends one entry per dispatched key, in document order:

- FieldApplied: a recognized field was imported onto the record.
- ExtraData: an unrecognized key was captured as extra data.
- IncludeDirective: another document was spliced in at this point.

Alongside the log, every applied value carries a Provenance (source
file, include depth, and a snapshot of the value right after it was
applied). ``replay()`` walks the log to rebuild a document for the
top-level source only:

- top-level field entries are re-emitted with the record's live value;
- top-level extra entries are re-emitted;
- top-level include entries become include markers (not inlined);
- entries from included files are skipped, except that a value which
  was changed after loading, or set without ever being loaded, is
  emitted after the walk. Included files are never written back.
"""

import copy
import logging
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Mapping, NamedTuple, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class FieldApplied(BaseModel):
    """A recognized field was imported."""
    kind: Literal["field_applied"] = "field_applied"
    name: str
    source_file: Optional[Path] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class ExtraData(BaseModel):
    """An unrecognized key was captured verbatim."""
    kind: Literal["extra_data"] = "extra_data"
    name: Any
    value: Any = None
    source_file: Optional[Path] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class IncludeDirective(BaseModel):
    """Another document was included at this point."""
    kind: Literal["include_directive"] = "include_directive"
    target_file: str  # as written in the including document
    resolved_path: Optional[Path] = None
    source_file: Optional[Path] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


HistoryEntry = Annotated[
    Union[FieldApplied, ExtraData, IncludeDirective],
    Field(discriminator="kind"),
]


class Provenance(BaseModel):
    """Where the current value of one field (or extra key) was last applied from."""
    source_file: Optional[Path] = None
    include_depth: int = 0
    loaded_value: Any = None  # deep copy taken right after the value was applied

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def from_include(self) -> bool:
        return self.include_depth > 0


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADING_INCLUDE = "loading_include"


class ReplayKind(str, Enum):
    FIELD = "field"
    EXTRA = "extra"
    INCLUDE = "include"


class ReplayItem(NamedTuple):
    kind: ReplayKind
    name: Any  # field name, extra key, or include target
    value: Any = None


class ConfigurationHistory:
    """History of one top-level load, including all transitively included files."""

    def __init__(self):
        self.entries: List[HistoryEntry] = []
        self.provenance: Dict[str, Provenance] = {}
        self.extra_provenance: Dict[Any, Provenance] = {}
        self.state = LoadState.IDLE
        self.top_level_source: Optional[Path] = None
        self._sources: List[Optional[Path]] = []

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    # -- load state machine ------------------------------------------------

    @property
    def current_source(self) -> Optional[Path]:
        return self._sources[-1] if self._sources else self.top_level_source

    @property
    def include_depth(self) -> int:
        return max(len(self._sources) - 1, 0)

    @property
    def include_stack(self) -> List[Optional[Path]]:
        return list(self._sources)

    def begin(self, source: Optional[Path]) -> None:
        """Reset the history and start a top-level load of ``source``."""
        if self.state is not LoadState.IDLE:
            raise RuntimeError(f"Cannot start loading {source}: a load is already in progress")
        self.entries = []
        self.provenance = {}
        self.extra_provenance = {}
        self.top_level_source = source
        self._sources = [source]
        self.state = LoadState.LOADING

    def enter_include(self, target: str, resolved: Path) -> None:
        """Record an include directive in the current source and descend into it."""
        self._require_loading("include")
        self.entries.append(IncludeDirective(
            target_file=target, resolved_path=resolved, source_file=self.current_source
        ))
        self._sources.append(resolved)
        self.state = LoadState.LOADING_INCLUDE
        logger.debug("Entering include %s (depth %d)", resolved, self.include_depth)

    def leave_include(self) -> None:
        if len(self._sources) < 2:
            raise RuntimeError("No include is being loaded")
        left = self._sources.pop()
        self.state = LoadState.LOADING if len(self._sources) == 1 else LoadState.LOADING_INCLUDE
        logger.debug("Leaving include %s", left)

    def finish(self) -> None:
        self._sources = []
        self.state = LoadState.IDLE

    def abort(self) -> None:
        """Return to idle after a failed load. Entries recorded so far are kept."""
        if self.state is not LoadState.IDLE:
            logger.debug("Load of %s aborted at include depth %d",
                         self.top_level_source, self.include_depth)
        self.finish()

    def _require_loading(self, what: str) -> None:
        if self.state is LoadState.IDLE:
            raise RuntimeError(f"Cannot record {what}: no load in progress")

    # -- recording ---------------------------------------------------------

    def _provenance(self, value: Any) -> Provenance:
        return Provenance(
            source_file=self.current_source,
            include_depth=self.include_depth,
            loaded_value=copy.deepcopy(value),
        )

    def record_field(self, name: str, value: Any) -> None:
        """Record that ``name`` was applied; ``value`` is the resulting live value."""
        self._require_loading("field")
        self.entries.append(FieldApplied(name=name, source_file=self.current_source))
        self.provenance[name] = self._provenance(value)

    def record_extra(self, name: Any, value: Any) -> None:
        self._require_loading("extra data")
        self.entries.append(ExtraData(name=name, value=copy.deepcopy(value),
                                      source_file=self.current_source))
        self.extra_provenance[name] = self._provenance(value)

    def is_top_level(self, entry: HistoryEntry) -> bool:
        return entry.source_file == self.top_level_source

    def includes(self, top_level_only: bool = True) -> List[IncludeDirective]:
        return [
            e for e in self.entries
            if isinstance(e, IncludeDirective) and (not top_level_only or self.is_top_level(e))
        ]

    # -- replay ------------------------------------------------------------

    def replay(self, broker, instance: Any,
               extras: Optional[Mapping] = None) -> List[ReplayItem]:
        """Items to write back for the top-level source, in original order.

        ``broker`` supplies the bridges used to read live values from
        ``instance``; ``extras`` is the record's live extra-data mapping.
        """
        items: List[ReplayItem] = []
        tail: List[ReplayItem] = []
        done_fields: Set[str] = set()
        done_extras: Set[Any] = set()
        live_extras = extras if extras is not None else {}

        for entry in self.entries:
            if not self.is_top_level(entry):
                continue
            if isinstance(entry, FieldApplied):
                if entry.name in done_fields:
                    continue
                done_fields.add(entry.name)
                bridge = broker.find(entry.name, fallback=lambda b, n: None)
                if bridge is None or not bridge.value_in(instance):
                    continue
                live = bridge.get_internal(instance)
                prov = self.provenance.get(entry.name)
                item = ReplayItem(ReplayKind.FIELD, entry.name, live)
                if prov is not None and prov.from_include and live != prov.loaded_value:
                    # changed after an include overrode it: must follow the include
                    tail.append(item)
                else:
                    items.append(item)
            elif isinstance(entry, ExtraData):
                if entry.name in done_extras:
                    continue
                done_extras.add(entry.name)
                if extras is not None and entry.name not in live_extras:
                    continue
                value = live_extras.get(entry.name, entry.value)
                items.append(ReplayItem(ReplayKind.EXTRA, entry.name, value))
            else:
                items.append(ReplayItem(ReplayKind.INCLUDE, entry.target_file))

        for bridge in broker:
            if bridge.name in done_fields or not bridge.value_in(instance):
                continue
            live = bridge.get_internal(instance)
            prov = self.provenance.get(bridge.name)
            if prov is None or live != prov.loaded_value:
                logger.debug("Absorbing %r into top-level output", bridge.name)
                tail.append(ReplayItem(ReplayKind.FIELD, bridge.name, live))

        for key, value in live_extras.items():
            if key in done_extras:
                continue
            prov = self.extra_provenance.get(key)
            if prov is None or value != prov.loaded_value:
                tail.append(ReplayItem(ReplayKind.EXTRA, key, value))

        return items + tail
