"""Public API for yproj.

High-level functions that take document paths and return complete,
structured results. The CLI is a thin layer over these.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from yproj._internal.canonical_json import to_jsonable
from yproj._internal.io.yaml_io import SCALAR_TAGS, parse_documents, read_text
from yproj.kernel.history import IncludeDirective
from yproj.kernel.tree_builder import StreamingTreeBuilder, StructRecord
from yproj.package_spec import PackageSpec, package_spec_from_project
from yproj.project import Project
from yproj.settings import DumpOptions, LoaderOptions

PathLike = Union[str, os.PathLike, Path]


def _normalize_path(path: PathLike) -> Path:
    """Normalize path input to Path object."""
    return Path(path) if not isinstance(path, Path) else path


class FieldSource(BaseModel):
    """Where a field's current value was loaded from."""
    source_file: Optional[str] = None
    include_depth: int = 0


class LoadResult(BaseModel):
    """Stable result model for a loaded project document."""
    path: str
    fields: Dict[str, Any]  # field name -> live value (JSON-compatible)
    extras: Dict[str, Any] = Field(default_factory=dict)  # unrecognized keys, as loaded
    provenance: Dict[str, FieldSource] = Field(default_factory=dict)
    includes: List[str] = Field(default_factory=list)  # resolved include paths, in load order
    history_size: int = 0


class RecordTypeInfo(BaseModel):
    """A record type discovered by the streaming tree builder."""
    type_name: Optional[str] = None  # None for anonymous records
    fields: List[str]  # discovery order
    finalized: bool
    count: int  # occurrences in the document


def load_project(path: PathLike, options: Optional[LoaderOptions] = None) -> Project:
    """Load a project document (and its includes)."""
    return Project.load_file(_normalize_path(path), options)


def inspect_project(path: PathLike, options: Optional[LoaderOptions] = None) -> LoadResult:
    """Load a project and describe its fields, extra data and provenance."""
    project = load_project(path, options)
    loader = Project.loader(options)
    fields = {}
    for bridge in loader.broker:
        if bridge.value_in(project):
            fields[bridge.name] = to_jsonable(bridge.get_internal(project))
    history = project.history
    return LoadResult(
        path=str(history.top_level_source),
        fields=fields,
        extras=to_jsonable(project.extra_conf_data or {}),
        provenance={
            name: FieldSource(
                source_file=None if prov.source_file is None else str(prov.source_file),
                include_depth=prov.include_depth,
            )
            for name, prov in history.provenance.items()
        },
        includes=[
            str(entry.resolved_path) for entry in history.entries
            if isinstance(entry, IncludeDirective)
        ],
        history_size=len(history),
    )


def dump_project(path: PathLike, out: Optional[PathLike] = None,
                 options: Optional[DumpOptions] = None) -> str:
    """Load a project and re-serialize its top-level document.

    Writes to ``out`` when given. Returns the rendered text.
    """
    project = load_project(path)
    text = project.dump(options)
    if out is not None:
        _normalize_path(out).write_text(text, encoding="utf-8")
    return text


def _count_records(node: Any, counts: Dict[int, int], seen: set) -> None:
    if id(node) in seen:
        return
    if isinstance(node, StructRecord):
        seen.add(id(node))
        counts[id(node.descriptor)] = counts.get(id(node.descriptor), 0) + 1
        node = node.values
    if isinstance(node, dict):
        seen.add(id(node))
        for value in node.values():
            _count_records(value, counts, seen)
    elif isinstance(node, list):
        seen.add(id(node))
        for value in node:
            _count_records(value, counts, seen)


def scan_records(path: PathLike, options: Optional[LoaderOptions] = None) -> List[RecordTypeInfo]:
    """Record types found in every document of the file, in discovery order."""
    opts = options or LoaderOptions()
    path = _normalize_path(path)
    builder = StreamingTreeBuilder(opts.record_tag_prefix, SCALAR_TAGS)
    docs = parse_documents(read_text(path, opts.encoding), path, builder=builder)
    counts: Dict[int, int] = {}
    seen: set = set()
    for doc in docs:
        _count_records(doc, counts, seen)
    return [
        RecordTypeInfo(
            type_name=desc.type_name,
            fields=list(desc.fields),
            finalized=desc.finalized,
            count=counts.get(id(desc), 0),
        )
        for desc in builder.descriptors
    ]


def package_spec(path: PathLike, package: Optional[str] = None) -> PackageSpec:
    """Load a project and export its package spec."""
    return package_spec_from_project(load_project(path), package)
