import json

import pytest

from tessera.datafile import ContentFile, Document, FileFormat, deep_merge, parse_hybrid
from tessera.errors import ParseError, UnsupportedFormatError


def count_reads(monkeypatch, content_file):
    calls = []
    original = content_file._read_text

    def spy():
        calls.append(1)
        return original()

    monkeypatch.setattr(content_file, "_read_text", spy)
    return calls


def test_format_detection(tmp_path):
    assert ContentFile(tmp_path / "a.yml").format is FileFormat.YAML
    assert ContentFile(tmp_path / "a.YAML").format is FileFormat.YAML
    assert ContentFile(tmp_path / "a.json").format is FileFormat.JSON
    assert ContentFile(tmp_path / "a.html").format is FileFormat.HYBRID
    assert ContentFile(tmp_path / "a.txt").format is FileFormat.UNSUPPORTED
    assert ContentFile(tmp_path / "a.txt").is_supported() is False
    assert ContentFile(tmp_path / "nested" / ".." / "a.json").path == (tmp_path / "a.json").resolve()


def test_missing_file_reads_as_empty(tmp_path):
    assert ContentFile(tmp_path / "missing.yml").read() == {}
    assert ContentFile(tmp_path / "missing.json").read() == {}
    assert ContentFile(tmp_path / "missing.html").read() == Document(metadata={}, body="")


def test_read_is_cached_until_forced(monkeypatch, tmp_path):
    path = tmp_path / "site.yml"
    path.write_text("title: One\n", encoding="utf-8")
    data = ContentFile(path)
    calls = count_reads(monkeypatch, data)

    assert data.read() == {"title": "One"}
    path.write_text("title: Two\n", encoding="utf-8")
    assert data.read() == {"title": "One"}
    assert len(calls) == 1

    assert data.read(force_reload=True) == {"title": "Two"}
    assert len(calls) == 2


def test_instances_do_not_share_state(tmp_path):
    path = tmp_path / "site.json"
    path.write_text('{"a": 1}', encoding="utf-8")
    first, second = ContentFile(path), ContentFile(path)
    first.patch({"b": 2})
    assert second.read() == {"a": 1}
    first.write()
    assert second.read() == {"a": 1}
    assert second.read(force_reload=True) == {"a": 1, "b": 2}


def test_write_before_read_keeps_existing_keys(tmp_path):
    path = tmp_path / "site.yml"
    path.write_text("title: Home\nnav:\n  - a\n", encoding="utf-8")
    ContentFile(path).write({"nav": ["b"], "lang": "en"})

    assert ContentFile(path).read() == {"title": "Home", "nav": ["a", "b"], "lang": "en"}


def test_write_missing_file_creates_it(tmp_path):
    path = tmp_path / "deep" / "new.json"
    ContentFile(path).write({"x": 1})
    assert json.loads(path.read_text(encoding="utf-8")) == {"x": 1}


def test_json_written_with_two_space_indent(tmp_path):
    path = tmp_path / "data.json"
    ContentFile(path).write({"a": {"b": 1}})
    assert path.read_text(encoding="utf-8") == '{\n  "a": {\n    "b": 1\n  }\n}'


def test_deep_merge_semantics():
    assert deep_merge({"a": {"x": 1}}, {"a": {"y": 2}}) == {"a": {"x": 1, "y": 2}}
    assert deep_merge({"a": [1, 2]}, {"a": [3]}) == {"a": [1, 2, 3]}
    assert deep_merge({"a": 1}, {"a": {"b": 2}}) == {"a": {"b": 2}}
    assert deep_merge({"a": {"b": 1}}, {"a": None}) == {"a": None}


def test_deep_merge_does_not_mutate_inputs():
    target = {"a": {"list": [1]}}
    update = {"a": {"list": [2]}}
    merged = deep_merge(target, update)
    merged["a"]["list"].append(99)
    assert target == {"a": {"list": [1]}}
    assert update == {"a": {"list": [2]}}


def test_patch_reads_first(tmp_path):
    path = tmp_path / "site.yml"
    path.write_text("a:\n  x: 1\n", encoding="utf-8")
    data = ContentFile(path)
    assert data.patch({"a": {"y": 2}}) == {"a": {"x": 1, "y": 2}}


def test_hybrid_patch_only_touches_metadata(tmp_path):
    path = tmp_path / "page.html"
    path.write_text("---\ntitle: Home\ntags: [a]\n---\n<p>{{ title }}</p>\n", encoding="utf-8")
    page = ContentFile(path)
    doc = page.patch({"tags": ["b"], "layout": "wide"})
    assert doc.metadata == {"title": "Home", "tags": ["a", "b"], "layout": "wide"}
    assert doc.body == "<p>{{ title }}</p>\n"


def test_hybrid_round_trip(tmp_path):
    body = "<h1>Hi</h1>\r\n\n  trailing spaces  \n---\nnot front matter\n"
    path = tmp_path / "page.html"
    path.write_bytes(("---\ntitle: Hello\norder: 2\n---\n" + body).encode("utf-8"))

    original = ContentFile(path).read()
    ContentFile(path).write()
    again = ContentFile(path).read()

    assert again.metadata == original.metadata == {"title": "Hello", "order": 2}
    assert again.body == original.body == body


def test_hybrid_without_front_matter_is_all_body(tmp_path):
    path = tmp_path / "plain.html"
    path.write_text("<p>plain</p>", encoding="utf-8")
    doc = ContentFile(path).read()
    assert doc.metadata == {}
    assert doc.body == "<p>plain</p>"


def test_hybrid_strips_bom(tmp_path):
    doc = parse_hybrid("\ufeff---\na: 1\n---\nbody", tmp_path / "x.html")
    assert doc.metadata == {"a": 1}
    assert doc.body == "body"


@pytest.mark.parametrize(("name", "raw"), [("bom.json", '{"a": 1}'), ("bom.yml", "a: 1\n")])
def test_structured_files_strip_bom(tmp_path, name, raw):
    path = tmp_path / name
    path.write_bytes(b"\xef\xbb\xbf" + raw.encode("utf-8"))
    assert ContentFile(path).read() == {"a": 1}


def test_written_hybrid_layout(tmp_path):
    path = tmp_path / "page.html"
    page = ContentFile(path)
    page.content = Document(metadata={"title": "T"}, body="<p>x</p>\n")
    page.write()
    assert path.read_text(encoding="utf-8") == "---\ntitle: T\n---\n<p>x</p>\n"


@pytest.mark.parametrize(
    ("name", "raw"),
    [
        ("bad.yml", b"a: [1, 2\n"),
        ("bad.json", b"{not json}"),
        ("bad.html", b"---\na: [unclosed\n---\nbody"),
        ("list.html", b"---\n- a\n- b\n---\nbody"),
        ("latin1.yml", b"---\ntitle: \xff\xfe\n---\nbody"),
        ("latin1.json", b"---\ntitle: \xff\xfe\n---\nbody"),
        ("latin1.html", b"---\ntitle: \xff\xfe\n---\nbody"),
    ],
)
def test_malformed_content_raises_parse_error(tmp_path, name, raw):
    path = tmp_path / name
    path.write_bytes(raw)
    with pytest.raises(ParseError) as excinfo:
        ContentFile(path).read()
    assert excinfo.value.path == path.resolve()


def test_empty_yaml_reads_as_empty_mapping(tmp_path):
    path = tmp_path / "empty.yml"
    path.write_text("", encoding="utf-8")
    assert ContentFile(path).read() == {}


def test_unsupported_format_fails_without_writing(tmp_path):
    path = tmp_path / "notes.txt"
    data = ContentFile(path)
    with pytest.raises(UnsupportedFormatError):
        data.read()
    with pytest.raises(UnsupportedFormatError):
        data.write({"a": 1})
    assert not path.exists()

    path.write_text("keep", encoding="utf-8")
    with pytest.raises(UnsupportedFormatError):
        ContentFile(path).write({"a": 1})
    assert path.read_text(encoding="utf-8") == "keep"
