"""volley body - request body sources, templates, forms and JSON coercion."""

import json
import mimetypes
import re
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable

import urllib3
import yaml

from volley.errors import BodyError, BodyParseError, TemplateError, UnsupportedEncoding

FILE_INDICATOR = "@"
STDIN_REFERENCE = "stdin"

FORM_URLENCODED = "application/x-www-form-urlencoded"

# Rendered in place of a variable that was not supplied.
NO_VALUE = "<no value>"

# {{ .Vars.name }} with optional Go-style trim markers: {{- ... -}}
_ACTION_RE = re.compile(r"\{\{(-\s+)?(.*?)(\s+-)?\}\}", re.DOTALL)
_VAR_RE = re.compile(r"^\.Vars\.([A-Za-z_][A-Za-z0-9_]*)$")


@dataclass(frozen=True)
class BodySources:
    """Every place a body can come from, highest precedence first."""

    body: str | None = None
    template: str | None = None
    config_body: str | None = None
    config_template: Path | None = None
    config_form: tuple[tuple[str, str], ...] = ()
    payload_file: str | None = None
    form: bool = False
    form_encoding: str = "auto"


@dataclass(frozen=True)
class ResolvedBody:
    content: bytes | None = None
    content_type: str | None = None
    form: bool = False


def render_template(text: str, variables: dict[str, str], source: str, strict: bool = False) -> str:
    """Substitute {{.Vars.<name>}} actions in text.

    A variable that was not supplied renders as NO_VALUE, or raises
    TemplateError when strict is set. Actions other than variable lookups
    and unterminated actions always raise TemplateError.
    """
    out: list[str] = []
    pos = 0
    trim_next = False
    for m in _ACTION_RE.finditer(text):
        literal = text[pos : m.start()]
        if trim_next:
            literal = literal.lstrip()
        if m.group(1):
            literal = literal.rstrip()
        out.append(literal)

        action = m.group(2).strip()
        var = _VAR_RE.match(action)
        if not var:
            raise TemplateError(f"could not parse {source}: unsupported action '{{{{{action}}}}}'")
        name = var.group(1)
        if name in variables:
            out.append(str(variables[name]))
        elif strict:
            raise TemplateError(f"could not execute {source}: no variable named '{name}'")
        else:
            out.append(NO_VALUE)

        pos = m.end()
        trim_next = bool(m.group(3))

    tail = text[pos:]
    if "{{" in tail:
        raise TemplateError(f"could not parse {source}: unclosed action")
    if trim_next:
        tail = tail.lstrip()
    out.append(tail)
    return "".join(out)


def apply_variables(content: bytes, variables: dict[str, str], source: str, strict: bool = False) -> bytes:
    """Render content as a template, or return it untouched when there are no variables."""
    if not variables:
        return content
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise TemplateError(f"could not parse {source}: content is not UTF-8 text") from e
    return render_template(text, variables, source, strict).encode("utf-8")


def parse_template_vars(var_specs: Iterable[str]) -> dict[str, str]:
    """Parse KEY=VALUE specs. Specs without '=' are ignored."""
    variables: dict[str, str] = {}
    for spec in var_specs:
        if "=" in spec:
            k, val = spec.split("=", 1)
            variables[k.strip()] = val
    return variables


def parse_form_fields(form_specs: Iterable[str]) -> dict:
    """Parse KEY=VALUE and KEY=@FILE form specs.

    Returns a dict with:
      - data: {key: str_value}
      - files: {key: path}
    Blank specs and specs without '=' are ignored.
    """
    data: dict[str, str] = {}
    files: dict[str, str] = {}

    for spec in form_specs:
        spec = spec.strip()
        if "=" not in spec:
            continue
        key, value = spec.split("=", 1)
        if value.startswith(FILE_INDICATOR):
            files[key] = value[len(FILE_INDICATOR) :]
        else:
            data[key] = value

    return {"data": data, "files": files}


def encode_form(form: dict, encoding: str = "auto") -> ResolvedBody:
    """Encode parsed form fields as url-encoded or multipart content."""
    if encoding == "auto":
        encoding = "multipart" if form["files"] else "urlencoded"

    if encoding == "urlencoded":
        if form["files"]:
            raise UnsupportedEncoding(
                "file uploads not supported with URL encoding, use multipart form data instead",
            )
        content = urllib.parse.urlencode(list(form["data"].items())).encode("ascii")
        return ResolvedBody(content=content, content_type=FORM_URLENCODED, form=True)

    fields: list[tuple] = list(form["data"].items())
    for key, path in form["files"].items():
        filepath = Path(path)
        try:
            payload = filepath.read_bytes()
        except OSError as e:
            raise BodyError(f"failed to open file {path}: {e.strerror}") from e
        mime = mimetypes.guess_type(str(filepath))[0] or "application/octet-stream"
        fields.append((key, (filepath.name, payload, mime)))

    content, content_type = urllib3.encode_multipart_formdata(fields)
    return ResolvedBody(content=content, content_type=content_type, form=True)


def coerce_json(content: bytes) -> bytes:
    """Parse YAML (or JSON) content and re-serialise it as compact JSON."""
    try:
        data = yaml.safe_load(content)
        return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    except (yaml.YAMLError, TypeError) as e:
        raise BodyParseError(f"could not parse post body: {e}") from e


def read_reference(reference: str, stdin: BinaryIO | None) -> tuple[bytes, str]:
    """Resolve a body reference to (content, description).

    '@path' reads a file, 'stdin' reads standard input, anything else is
    literal content.
    """
    if reference.startswith(FILE_INDICATOR):
        path = reference[len(FILE_INDICATOR) :]
        return _read_file(path, "body"), f"body file '{path}'"
    if reference == STDIN_REFERENCE:
        if stdin is None:
            raise BodyError("standard input is not available")
        return _read_stdin(stdin), "stdin"
    return reference.encode("utf-8"), "inline body"


def resolve_body(
    sources: BodySources,
    variables: dict[str, str] | None = None,
    stdin: BinaryIO | None = None,
    strict: bool = False,
) -> ResolvedBody:
    """Resolve the request body from the first available source.

    Precedence: --body, --template, configured body, configured template,
    configured form fields, legacy payload file, then stdin. Pass stdin
    only when it is not an interactive terminal. With strict, an undefined
    template variable is a TemplateError instead of NO_VALUE.
    """
    variables = variables or {}
    form = sources.form

    if sources.body is not None:
        content, label = read_reference(sources.body, stdin)
    elif sources.template:
        content = _read_file(sources.template, "template", TemplateError)
        label = f"template file '{sources.template}'"
    elif sources.config_body is not None:
        content, label = sources.config_body.encode("utf-8"), "configured body"
    elif sources.config_template:
        content = _read_file(str(sources.config_template), "template", TemplateError)
        label = f"template file '{sources.config_template}'"
    elif sources.config_form:
        specs = [
            f"{k}={render_template(v, variables, 'configured form', strict) if variables else v}"
            for k, v in sources.config_form
        ]
        return encode_form(parse_form_fields(specs), sources.form_encoding)
    elif sources.payload_file:
        content = _read_file(sources.payload_file, "payload")
        if form:
            return _form_body(content, sources.form_encoding)
        return ResolvedBody(content=content or None)
    elif stdin is not None:
        content, label = _read_stdin(stdin), "stdin"
    else:
        return ResolvedBody()

    content = apply_variables(content, variables, label, strict)
    if form:
        return _form_body(content, sources.form_encoding)
    return ResolvedBody(content=content or None)


def _form_body(content: bytes, encoding: str) -> ResolvedBody:
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise BodyError("form data must be UTF-8 text") from e
    return encode_form(parse_form_fields(text.splitlines()), encoding)


def _read_file(path: str, what: str, error: type[Exception] = BodyError) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise error(f"could not read {what} file '{path}': {e.strerror}") from e


def _read_stdin(stdin: BinaryIO) -> bytes:
    try:
        return stdin.read()
    except OSError as e:
        raise BodyError(f"reading standard input: {e}") from e
