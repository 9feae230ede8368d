"""Tests for exporting projects as package specs."""

import logging

import pytest
from pydantic import ValidationError

from yproj.package_spec import (
    EXPORT_BROKER,
    PackageSpec,
    field_value,
    package_spec_from_project,
    parse_dependencies,
)
from yproj.project import Project

PROJECT_DOC = """
    name: tools
    version: 1.5
    summary: Shared tools
    license: MIT
    authors: [Ada, Bob]
    lib_files: [lib/tools.py]
    test_files: [test/test_tools.py]
    doc_files: [README.md]
    metadata: {1: one, docs: yes}
    depends: {pyyaml: '>=6', pydantic: null}
    packages:
      tools-cli:
        summary: Command line front end
        depends: [tools ==1.5, click]
      tools-renamed:
        name: other
"""


@pytest.fixture
def project(write_doc):
    return Project.load_file(write_doc("project.yaml", PROJECT_DOC))


def test_project_scope_export(project):
    spec = package_spec_from_project(project)

    assert spec.name == "tools"
    assert spec.version == "1.5"
    assert spec.summary == "Shared tools"
    assert spec.license == "MIT"
    assert spec.description is None
    assert spec.authors == ["Ada", "Bob"]
    assert spec.files == ["lib/tools.py", "test/test_tools.py", "README.md"]
    assert spec.metadata == {"1": "one", "docs": "True"}
    assert spec.dependencies == {"pyyaml": ">=6", "pydantic": None}


def test_package_scope_overrides_with_fallback(project):
    spec = package_spec_from_project(project, "tools-cli")

    assert spec.name == "tools-cli"
    assert spec.summary == "Command line front end"
    assert spec.version == "1.5"  # falls back to project scope
    assert spec.dependencies == {"tools": "==1.5", "click": None}

    assert package_spec_from_project(project, "tools-renamed").name == "other"


def test_unknown_package_uses_project_values(project, caplog):
    with caplog.at_level(logging.WARNING, logger="yproj.package_spec"):
        spec = package_spec_from_project(project, "missing")
    assert spec.name == "tools"
    assert "No package 'missing'" in caplog.text


def test_field_value_lookup_order(project):
    assert field_value(project, "summary", "tools-cli") == "Command line front end"
    assert field_value(project, "summary") == "Shared tools"
    assert field_value(project, "depends")["pyyaml"] == ">=6"
    assert field_value(project, "homepage", default="n/a") == "n/a"
    assert field_value(project, "homepage", fallback=lambda p, name: f"{p.name}:{name}") == "tools:homepage"


def test_unset_fields_are_not_exported():
    spec = package_spec_from_project(Project(name="bare"))
    assert spec == PackageSpec(name="bare")
    assert EXPORT_BROKER.names() == [
        "name", "version", "summary", "description", "homepage", "license",
        "authors", "files", "dependencies", "metadata",
    ]


def test_package_spec_model():
    spec = PackageSpec(version=2)
    assert spec.version == "2"
    spec.add_file("a.py")
    spec.add_file("a.py")
    spec.add_dependency("pyyaml", ">=6")
    spec.add_author("Ada")
    assert spec.files == ["a.py"]
    assert spec.dependencies == {"pyyaml": ">=6"}
    with pytest.raises(ValidationError):
        PackageSpec(unknown="x")


@pytest.mark.parametrize("value,expected", [
    (None, {}),
    ({"a": 1}, {"a": "1"}),
    ("a >=1", {"a": ">=1"}),
    (["a", "b ==2", {"c": None}], {"a": None, "b": "==2", "c": None}),
])
def test_parse_dependencies(value, expected):
    assert parse_dependencies(value) == expected
