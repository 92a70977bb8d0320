"""Tests for body sources, templates, forms and JSON coercion."""

import io
import json
import urllib.parse

import pytest

from volley.body import (
    FORM_URLENCODED,
    BodySources,
    apply_variables,
    coerce_json,
    encode_form,
    parse_form_fields,
    parse_template_vars,
    render_template,
    resolve_body,
)
from volley.errors import BodyError, BodyParseError, TemplateError, UnsupportedEncoding

# ── Templates ────────────────────────────────────────────────────────────


class TestRenderTemplate:
    def test_substitutes_variable(self):
        out = render_template('{"hello": "{{.Vars.name}}"}', {"name": "World"}, "body")
        assert out == '{"hello": "World"}'

    def test_greeting(self):
        assert render_template("Hello, {{.Vars.name}}!", {"name": "World"}, "body") == "Hello, World!"

    def test_spaces_inside_action(self):
        assert render_template("{{ .Vars.name }}", {"name": "x"}, "body") == "x"

    def test_trim_markers(self):
        text = "a   {{- .Vars.v -}}   b"
        assert render_template(text, {"v": "X"}, "body") == "aXb"

    def test_trim_left_only(self):
        assert render_template("a \n{{- .Vars.v }} b", {"v": "X"}, "body") == "aX b"

    def test_undefined_variable_renders_no_value(self):
        assert render_template("a={{.Vars.missing}};", {"name": "x"}, "body") == "a=<no value>;"

    def test_undefined_variable_strict(self):
        with pytest.raises(TemplateError, match="could not execute body: no variable named 'missing'"):
            render_template("{{.Vars.missing}}", {"name": "x"}, "body", strict=True)

    def test_unsupported_action(self):
        with pytest.raises(TemplateError, match="could not parse"):
            render_template("{{range .Items}}", {"name": "x"}, "body")

    def test_unclosed_action(self):
        with pytest.raises(TemplateError, match="unclosed action"):
            render_template("{{.Vars.name", {"name": "x"}, "body")


class TestApplyVariables:
    def test_no_variables_is_passthrough(self):
        """Content that looks like a broken template is untouched without variables."""
        raw = b"{{ not a template \xff"
        assert apply_variables(raw, {}, "body") == raw

    def test_rendering_is_stable(self):
        vars_ = {"name": "World"}
        first = apply_variables(b"hi {{.Vars.name}}", vars_, "body")
        assert first == apply_variables(b"hi {{.Vars.name}}", vars_, "body") == b"hi World"

    def test_binary_content_with_variables(self):
        with pytest.raises(TemplateError, match="not UTF-8"):
            apply_variables(b"\xff\xfe", {"a": "b"}, "body")


class TestParseTemplateVars:
    def test_key_value(self):
        assert parse_template_vars(("name=World", "n=1")) == {"name": "World", "n": "1"}

    def test_value_with_equals(self):
        assert parse_template_vars(("q=a=b",)) == {"q": "a=b"}

    def test_later_wins(self):
        assert parse_template_vars(("a=1", "a=2")) == {"a": "2"}

    def test_without_equals_ignored(self):
        assert parse_template_vars(("oops",)) == {}


# ── Forms ────────────────────────────────────────────────────────────────


class TestParseFormFields:
    def test_text_field(self):
        result = parse_form_fields(("name=test",))
        assert result["data"] == {"name": "test"}
        assert result["files"] == {}

    def test_file_field(self):
        result = parse_form_fields(("image=@photo.jpg",))
        assert result["files"] == {"image": "photo.jpg"}

    def test_value_with_equals(self):
        result = parse_form_fields(("url=http://example.com?a=1",))
        assert result["data"]["url"] == "http://example.com?a=1"

    def test_blank_and_invalid_lines_ignored(self):
        result = parse_form_fields(("", "  ", "invalid_spec"))
        assert result == {"data": {}, "files": {}}


class TestEncodeForm:
    def test_auto_urlencoded(self):
        body = encode_form(parse_form_fields(("a=1 2", "b=x&y")))
        assert body.content_type == FORM_URLENCODED
        assert body.content == b"a=1+2&b=x%26y"
        assert body.form

    def test_urlencoded_decodes_to_original_pairs(self):
        pairs = [("q", "a b&c=d"), ("emoji", "héllo"), ("empty", "")]
        body = encode_form(parse_form_fields(f"{k}={v}" for k, v in pairs))
        assert urllib.parse.parse_qsl(body.content.decode(), keep_blank_values=True) == pairs

    def test_auto_multipart_with_files(self, tmp_path):
        upload = tmp_path / "report.txt"
        upload.write_text("hello report")
        body = encode_form(parse_form_fields(("title=Report", f"file=@{upload}")))
        assert body.content_type.startswith("multipart/form-data; boundary=")
        boundary = body.content_type.split("boundary=", 1)[1]
        assert boundary.encode() in body.content
        assert b'name="title"' in body.content
        assert b'filename="report.txt"' in body.content
        assert b"hello report" in body.content

    def test_forced_multipart_without_files(self):
        body = encode_form(parse_form_fields(("a=1",)), "multipart")
        assert body.content_type.startswith("multipart/form-data")
        assert b'name="a"' in body.content

    def test_urlencoded_rejects_files(self):
        with pytest.raises(UnsupportedEncoding, match="file uploads not supported"):
            encode_form(parse_form_fields(("f=@x.bin",)), "urlencoded")

    def test_missing_upload(self, tmp_path):
        with pytest.raises(BodyError, match="failed to open file"):
            encode_form(parse_form_fields((f"f=@{tmp_path / 'gone.bin'}",)))


# ── JSON coercion ────────────────────────────────────────────────────────


class TestCoerceJson:
    def test_yaml_to_json(self):
        out = coerce_json(b"name: test\ntags:\n  - a\n  - b\n")
        assert json.loads(out) == {"name": "test", "tags": ["a", "b"]}

    def test_json_passes_semantically(self):
        assert json.loads(coerce_json(b'{"b": 1, "a": [true, null]}')) == {"a": [True, None], "b": 1}

    def test_compact_output(self):
        assert coerce_json(b"a: 1") == b'{"a":1}'

    def test_invalid(self):
        with pytest.raises(BodyParseError, match="could not parse post body"):
            coerce_json(b"a: [1, 2")


# ── resolve_body ─────────────────────────────────────────────────────────


class TestResolveBody:
    def test_inline_body(self):
        assert resolve_body(BodySources(body="hello")).content == b"hello"

    def test_body_file(self, tmp_path):
        f = tmp_path / "payload.json"
        f.write_bytes(b'{"a": 1}')
        assert resolve_body(BodySources(body=f"@{f}")).content == b'{"a": 1}'

    def test_missing_body_file(self, tmp_path):
        with pytest.raises(BodyError, match="could not read body file"):
            resolve_body(BodySources(body=f"@{tmp_path / 'nope.json'}"))

    def test_body_stdin(self):
        stdin = io.BytesIO(b"from stdin")
        assert resolve_body(BodySources(body="stdin"), stdin=stdin).content == b"from stdin"

    def test_body_beats_template_and_stdin(self, tmp_path):
        tmpl = tmp_path / "t.tmpl"
        tmpl.write_text("template")
        sources = BodySources(body="inline", template=str(tmpl))
        assert resolve_body(sources, stdin=io.BytesIO(b"piped")).content == b"inline"

    def test_template_rendered(self, tmp_path):
        tmpl = tmp_path / "greeting.tmpl"
        tmpl.write_text('{"hello": "{{.Vars.name}}"}')
        body = resolve_body(BodySources(template=str(tmpl)), {"name": "World"})
        assert body.content == b'{"hello": "World"}'

    def test_missing_template_is_template_error(self, tmp_path):
        with pytest.raises(TemplateError, match="could not read template file"):
            resolve_body(BodySources(template=str(tmp_path / "nope.tmpl")))

    def test_config_body(self):
        body = resolve_body(BodySources(config_body="hi {{.Vars.n}}"), {"n": "there"})
        assert body.content == b"hi there"

    def test_config_template(self, tmp_path):
        tmpl = tmp_path / "body.tmpl"
        tmpl.write_text("configured")
        assert resolve_body(BodySources(config_template=tmpl)).content == b"configured"

    def test_config_form(self):
        sources = BodySources(config_form=(("who", "{{.Vars.n}}"),))
        body = resolve_body(sources, {"n": "me"})
        assert body.form
        assert body.content == b"who=me"

    def test_config_form_strict(self):
        sources = BodySources(config_form=(("who", "{{.Vars.missing}}"),))
        with pytest.raises(TemplateError, match="configured form"):
            resolve_body(sources, {"n": "me"}, strict=True)

    def test_config_body_undefined_variable(self):
        body = resolve_body(BodySources(config_body="hi {{.Vars.who}}"), {"n": "there"})
        assert body.content == b"hi <no value>"

    def test_payload_file_never_templated(self, tmp_path):
        f = tmp_path / "legacy.json"
        f.write_text("{{.Vars.name}}")
        body = resolve_body(BodySources(payload_file=str(f)), {"name": "World"})
        assert body.content == b"{{.Vars.name}}"

    def test_stdin_fallback_is_templated(self):
        body = resolve_body(BodySources(), {"v": "1"}, stdin=io.BytesIO(b"v={{.Vars.v}}"))
        assert body.content == b"v=1"

    def test_no_source(self):
        body = resolve_body(BodySources())
        assert body.content is None
        assert body.content_type is None

    def test_empty_stdin_means_no_body(self):
        assert resolve_body(BodySources(), stdin=io.BytesIO(b"")).content is None

    def test_stdin_reference_without_stream(self):
        with pytest.raises(BodyError, match="standard input"):
            resolve_body(BodySources(body="stdin"))

    def test_form_from_stdin(self):
        stdin = io.BytesIO(b"name=test\ncolor=blue\n")
        body = resolve_body(BodySources(form=True), stdin=stdin)
        assert body.content_type == FORM_URLENCODED
        assert body.content == b"name=test&color=blue"

    def test_form_multipart_upload(self, tmp_path):
        upload = tmp_path / "data.csv"
        upload.write_text("a,b\n1,2\n")
        body = resolve_body(BodySources(body=f"name=test\nfile=@{upload}", form=True))
        assert body.content_type.startswith("multipart/form-data")
        assert b"a,b\n1,2\n" in body.content

    def test_form_forced_urlencoded_with_file(self):
        with pytest.raises(UnsupportedEncoding):
            resolve_body(BodySources(body="f=@x.bin", form=True, form_encoding="urlencoded"))
