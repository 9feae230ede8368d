"""Project record: the configuration of one software project.

A project document is a YAML mapping:

    ---
    name: yproj
    version: 0.3.0
    authors: [Sam Doe]
    lib_files: [src/yproj/__init__.py]
    !ext include: !file common.yaml
    depends: {pydantic: ">=2"}

Keys without a declared field (``depends`` above) are kept in
``extra_conf_data`` and written back on dump.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

from yproj.kernel.collection_attrs import MapAttr, SeqAttr
from yproj.kernel.history import ConfigurationHistory
from yproj.loader import ConfigLoader
from yproj.settings import DumpOptions, LoaderOptions


class Project:
    """A project configuration record."""

    SERIALIZE_FIELDS = (
        "name",
        "version",
        "homepage",
        "summary",
        "description",
        "license",
        ("authors", "sequence"),
        ("require_paths", "sequence"),
        ("lib_files", "sequence"),
        ("test_files", "sequence"),
        ("doc_files", "sequence"),
        ("metadata", "mapping"),
    )
    EXTRA_FIELD = "extra_conf_data"
    YAML_TAG = "record:Project"

    authors = SeqAttr()
    require_paths = SeqAttr()
    lib_files = SeqAttr()
    test_files = SeqAttr()
    doc_files = SeqAttr()
    metadata = MapAttr()

    def __init__(self, **fields: Any):
        self.config_history: Optional[ConfigurationHistory] = None
        self.extra_conf_data: Dict[Any, Any] = {}
        for key, value in fields.items():
            setattr(self, key, value)

    def __repr__(self) -> str:
        name = self.__dict__.get("name")
        version = self.__dict__.get("version")
        label = f"{name} {version}" if version is not None else f"{name}"
        return f"<Project {label}>"

    @property
    def author(self) -> Optional[str]:
        """The single author, or None when no author is set.

        Raises:
            ValueError: if more than one author is set
        """
        authors = self.authors or []
        if len(authors) > 1:
            raise ValueError(f"{self!r} has {len(authors)} authors, use .authors")
        return authors[0] if authors else None

    @author.setter
    def author(self, value: str) -> None:
        self.authors = [value]

    @property
    def history(self) -> ConfigurationHistory:
        if self.config_history is None:
            self.config_history = ConfigurationHistory()
        return self.config_history

    @property
    def files(self) -> list:
        return [*(self.lib_files or []), *(self.test_files or []), *(self.doc_files or [])]

    @classmethod
    def loader(cls, options: Optional[LoaderOptions] = None) -> ConfigLoader:
        return ConfigLoader(cls, options)

    @classmethod
    def load_file(cls, path: Union[str, Path], options: Optional[LoaderOptions] = None) -> "Project":
        return cls.loader(options).load_file(path)

    @classmethod
    def load_stream(cls, stream, source: Optional[Union[str, Path]] = None,
                    options: Optional[LoaderOptions] = None) -> "Project":
        return cls.loader(options).load_stream(stream, source=source)

    def dump(self, options: Optional[DumpOptions] = None) -> str:
        return self.loader().dump(self, options)

    def write_file(self, path: Union[str, Path], options: Optional[DumpOptions] = None) -> Path:
        return self.loader().write_file(self, path, options)
