"""YAML reading and writing for configuration documents.

Reading goes through the StreamingTreeBuilder so that record-tagged
mappings and the application scalar tags are understood:

    !ext include: !file common.yaml

``!ext`` marks an extension key (ExtScalar) and ``!file`` a path
(IncludeFile). Both are plain text otherwise.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml

from yproj.errors import DocumentError
from yproj.kernel.tree_builder import StreamingTreeBuilder, StructRecord
from yproj.settings import DumpOptions

EXT_TAG = "!ext"
FILE_TAG = "!file"


@dataclass(frozen=True, eq=False)
class ExtScalar:
    """An ``!ext`` tagged scalar.

    Instances compare by identity, so several ``!ext include`` keys can
    live in one mapping.
    """
    value: str
    tag = EXT_TAG

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, eq=False)
class IncludeFile(ExtScalar):
    """An ``!file`` tagged path."""
    tag = FILE_TAG

    def resolve(self, basedir: Union[str, Path]) -> Path:
        path = Path(self.value).expanduser()
        return path if path.is_absolute() else Path(basedir) / path


SCALAR_TAGS = {EXT_TAG: ExtScalar, FILE_TAG: IncludeFile}


@dataclass(frozen=True)
class TaggedMapping:
    """A mapping dumped with an explicit tag (e.g. ``!record:Project``)."""
    tag: str
    mapping: dict


def read_text(path: Path, encoding: str = "utf-8-sig") -> str:
    try:
        return path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentError(path, f"cannot read file: {e}") from e


def parse_documents(text: str, source: Any = "<stream>", prefix: str = "record:",
                    builder: Optional[StreamingTreeBuilder] = None) -> List[Any]:
    """All documents in ``text``.

    ``builder`` defaults to a fresh StreamingTreeBuilder for ``prefix``
    that knows the extension scalar tags.

    Raises:
        DocumentError: on YAML syntax errors
        StructureError: on an inconsistent event stream
    """
    if builder is None:
        builder = StreamingTreeBuilder(prefix, SCALAR_TAGS)
    try:
        return builder.consume(yaml.parse(text))
    except yaml.YAMLError as e:
        raise DocumentError(source, f"YAML error: {e}") from e


def load_document_file(path: Path, encoding: str = "utf-8-sig", prefix: str = "record:") -> Any:
    """First document of the file at ``path`` (None for an empty file)."""
    docs = parse_documents(read_text(path, encoding), path, prefix)
    return docs[0] if docs else None


class ConfigDumper(yaml.SafeDumper):
    """SafeDumper that knows the extension tags, paths and records."""

    def choose_scalar_style(self):
        # explicitly tagged scalars are never implicit, so the emitter
        # would quote them; keep !ext/!file values plain where YAML allows it
        style = super().choose_scalar_style()
        if style == "'" and not self.event.style and self.event.tag in SCALAR_TAGS:
            analysis = self.analysis
            plain_ok = analysis.allow_flow_plain if self.flow_level else analysis.allow_block_plain
            if plain_ok and not (analysis.empty or analysis.multiline):
                return ""
        return style


def _represent_ext(dumper: ConfigDumper, data: ExtScalar) -> yaml.Node:
    return dumper.represent_scalar(data.tag, data.value)


def _represent_path(dumper: ConfigDumper, data: Path) -> yaml.Node:
    return dumper.represent_str(str(data))


def _represent_tagged(dumper: ConfigDumper, data: TaggedMapping) -> yaml.Node:
    return dumper.represent_mapping(data.tag, data.mapping)


def _represent_record(dumper: ConfigDumper, data: StructRecord) -> yaml.Node:
    return dumper.represent_mapping(data.tag or f"!record:{data.type_name or ''}", data.values)


ConfigDumper.add_representer(ExtScalar, _represent_ext)
ConfigDumper.add_representer(IncludeFile, _represent_ext)
ConfigDumper.add_multi_representer(Path, _represent_path)
ConfigDumper.add_representer(TaggedMapping, _represent_tagged)
ConfigDumper.add_representer(StructRecord, _represent_record)
ConfigDumper.add_representer(tuple, ConfigDumper.represent_list)


def dump_document(data: Any, options: Optional[DumpOptions] = None) -> str:
    """Render one document; mapping order is preserved."""
    opts = options or DumpOptions()
    if opts.tag and isinstance(data, dict):
        data = TaggedMapping(opts.tag if opts.tag.startswith("!") else f"!{opts.tag}", data)
    return yaml.dump(
        data,
        Dumper=ConfigDumper,
        sort_keys=False,
        width=opts.width,
        explicit_start=opts.explicit_start,
        default_flow_style=False,
        allow_unicode=True,
    )
