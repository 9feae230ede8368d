"""Tests for the Project record and its collection helpers."""

import pytest

from yproj.kernel.collection_attrs import MapAttr, SeqAttr
from yproj.project import Project


def test_collection_helpers():
    project = Project(name="demo")
    assert project.authors is None

    project.add_author("Ada", "Bob", "Ada")
    assert project.authors == ["Ada", "Bob"]
    project.remove_author("Ada")
    assert project.authors == ["Bob"]

    project.add_lib_file("lib/demo.py")
    project.add_require_path("lib")
    project.set_metadata("issues", "https://example.org/issues")
    project.remove_metadata("missing")
    assert project.lib_files == ["lib/demo.py"]
    assert project.require_paths == ["lib"]
    assert project.metadata == {"issues": "https://example.org/issues"}


def test_author_property():
    project = Project()
    assert project.author is None
    project.author = "Ada"
    assert project.authors == ["Ada"]
    assert project.author == "Ada"
    project.add_author("Bob")
    with pytest.raises(ValueError, match="2 authors"):
        project.author


def test_files_concatenate_lib_test_doc():
    project = Project(lib_files=["a.py"], test_files=["t.py"], doc_files=["README"])
    assert project.files == ["a.py", "t.py", "README"]


def test_seq_attr_copies_assigned_values():
    source = ["x"]
    project = Project(authors=source)
    project.add_author("y")
    assert source == ["x"]
    del project.authors
    assert project.authors is None
    with pytest.raises(AttributeError):
        del project.authors


def test_helpers_are_generated_per_attribute():
    class Box:
        items = SeqAttr(unique=False)
        entries = MapAttr()
        categories = SeqAttr()

    box = Box()
    box.add_item(1, 1)
    box.set_entries("k", "v")
    box.add_category("c")
    assert box.items == [1, 1]
    assert box.entries == {"k": "v"}
    assert box.categories == ["c"]
    assert Box.items.name == "items"


def test_load_write_round_trip(write_doc, tmp_path):
    write_doc("common.yaml", """
        license: MIT
        authors: [Ada]
    """)
    path = write_doc("project.yaml", """
        name: demo
        version: '1.2'
        !ext include: !file common.yaml
        lib_files: [lib/demo.py]
        metadata: {homepage_uri: 'https://example.org'}
        depends: {pyyaml: '>=6'}
    """)
    project = Project.load_file(path)
    assert repr(project) == "<Project demo 1.2>"
    assert project.license == "MIT"
    assert project.author == "Ada"
    assert project.extra_conf_data == {"depends": {"pyyaml": ">=6"}}
    assert project.history.provenance["license"].include_depth == 1

    project.add_author("Bob")
    out = project.write_file(tmp_path / "out.yaml")
    text = out.read_text(encoding="utf-8")
    assert "!ext include: !file common.yaml" in text
    assert "license" not in text

    # written next to common.yaml, so the include still resolves
    reloaded = Project.load_file(out)
    assert reloaded.authors == ["Ada", "Bob"]
    assert reloaded.license == "MIT"
    assert reloaded.metadata == {"homepage_uri": "https://example.org"}


def test_load_stream_and_dump():
    project = Project.load_stream("name: streamed\nsummary: From a string\n")
    assert project.summary == "From a string"
    assert project.dump().splitlines() == ["---", "name: streamed", "summary: From a string"]


def test_empty_and_null_collections():
    project = Project.load_stream("name: x\nauthors: []\nmetadata: {}\ndoc_files:\n")
    assert project.authors == []
    assert project.metadata == {}
    assert project.doc_files is None
    assert project.author is None
    project.add_author("Ada")
    assert project.authors == ["Ada"]


def test_wrong_shaped_collections_are_stored_unchanged():
    project = Project.load_stream("name: x\nauthors: abc\nmetadata: oops\n")
    assert project.authors == "abc"
    assert project.metadata == "oops"
    with pytest.raises(TypeError):
        project.set_metadata("k", "v")
