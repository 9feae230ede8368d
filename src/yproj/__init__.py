"""yproj: YAML project configuration with includes, field bridges and record parsing."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("yproj")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from yproj.api import LoadResult, RecordTypeInfo, inspect_project, load_project, package_spec
from yproj.codes import ErrorCode
from yproj.errors import (
    DocumentError,
    DuplicateFieldError,
    FieldBridgeNotFound,
    FieldKindError,
    StructureError,
    UnboundFieldError,
    UnresolvedIncludeError,
    YprojError,
)
from yproj.kernel.broker import FieldBroker, MappingFieldBroker, broker_for
from yproj.loader import ConfigLoader
from yproj.package_spec import PackageSpec, package_spec_from_project
from yproj.project import Project
from yproj.settings import BrokerOptions, DumpOptions, LoaderOptions

__all__ = [
    "__version__",
    "load_project",
    "inspect_project",
    "package_spec",
    "LoadResult",
    "RecordTypeInfo",
    "ErrorCode",
    "YprojError",
    "UnboundFieldError",
    "FieldBridgeNotFound",
    "DuplicateFieldError",
    "FieldKindError",
    "StructureError",
    "UnresolvedIncludeError",
    "DocumentError",
    "FieldBroker",
    "MappingFieldBroker",
    "broker_for",
    "ConfigLoader",
    "Project",
    "PackageSpec",
    "package_spec_from_project",
    "BrokerOptions",
    "LoaderOptions",
    "DumpOptions",
]
