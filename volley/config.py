"""volley config - config file discovery, loading and $VAR expansion."""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from volley.errors import ConfigError

GLOBAL_DIR = Path.home() / ".volley"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yml"

CWD_CONFIG_CANDIDATES = [
    ".volley.yml",
    ".volley.yaml",
]

# Seconds.
DEFAULT_TIMEOUT = 300

EXAMPLE_CONFIG = """\
url: https://api.example.com
display: verbose
timeout: 30
headers:
  X-Api-Key: ${API_KEY}
client_auth:
  username: alice
  password: ${API_PASSWORD}
flags:
  follow_redirects: true
  verify_tls: true
"""

_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


@dataclass(frozen=True)
class ClientAuth:
    """Client TLS material and basic-auth credentials from the config file."""

    cert: str = ""
    key: str = ""
    ca: str = ""
    username: str = ""
    password: str = ""


@dataclass(frozen=True)
class Flags:
    """Tri-state switches: None means the config file did not say."""

    follow_redirects: bool | None = None
    verify_tls: bool | None = None
    use_color: bool | None = None


@dataclass(frozen=True)
class RequestDefaults:
    method: str = ""
    body: str | None = None
    template: str | None = None
    form: tuple[tuple[str, str], ...] = ()
    form_encoding: str = "auto"


@dataclass(frozen=True)
class Config:
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    display: str = ""
    timeout: int = DEFAULT_TIMEOUT
    client_auth: ClientAuth = field(default_factory=ClientAuth)
    flags: Flags = field(default_factory=Flags)
    variables: dict[str, str] = field(default_factory=dict)
    request: RequestDefaults = field(default_factory=RequestDefaults)
    repeat_times: int = 1
    repeat_concurrent: int = 1
    config_dir: Path | None = None

    @property
    def follow_redirects(self) -> bool:
        return self.flags.follow_redirects is not False

    @property
    def verify_tls(self) -> bool:
        return self.flags.verify_tls is not False

    @property
    def use_color(self) -> bool:
        return self.flags.use_color is not False

    def relative_path(self, path: str) -> Path:
        """Resolve a path declared in the config file against its directory."""
        p = Path(path)
        if not p.is_absolute() and self.config_dir:
            p = Path(self.config_dir) / p
        return p


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (a missing file is an error)
      2. .volley.yml / .volley.yaml in CWD
      3. ~/.volley/config.yml
    """
    if config_file:
        found = resolve_path([Path(config_file)])
        if found is None:
            raise ConfigError(f"could not load configuration '{config_file}'")
        return found
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_env(env_file: str | None, base_dir: str | Path = ".") -> dict[str, str]:
    """Load .env file and merge with os.environ.

    Values from the .env file take precedence over os.environ.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir) / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def resolve_value(value: str | None, env: dict[str, str]) -> str | None:
    """Resolve $VAR and ${VAR} references in a string value.

    Unknown references are left untouched.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value

    def _replace(m: re.Match) -> str:
        var_name = m.group(1) or m.group(2)
        return env.get(var_name, m.group(0))

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", _replace, value)


def load_config(config_path: str | Path | None) -> Config:
    """Load a YAML config file into a Config. No path means all defaults."""
    if config_path is None:
        return Config()
    path = Path(config_path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"could not load configuration '{path}': {e.strerror}") from e
    except yaml.YAMLError as e:
        raise _invalid(f"could not parse configuration '{path}'") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise _invalid(f"configuration '{path}' must be a mapping")

    config_dir = path.resolve().parent
    env = load_env(_section(data, "env_file", str), config_dir)
    return build_config(data, env, config_dir)


def build_config(data: dict, env: dict[str, str], config_dir: Path | None = None) -> Config:
    """Turn a parsed YAML document into a Config."""
    headers = {
        str(k): resolve_value(_scalar(v), env) for k, v in (_section(data, "headers", dict) or {}).items()
    }

    auth = _section(data, "client_auth", dict) or {}
    client_auth = ClientAuth(
        cert=(resolve_value(_scalar(auth.get("cert")), env) or "").strip(),
        key=(resolve_value(_scalar(auth.get("key")), env) or "").strip(),
        ca=(resolve_value(_scalar(auth.get("ca")), env) or "").strip(),
        username=resolve_value(_scalar(auth.get("username")), env) or "",
        password=resolve_value(_scalar(auth.get("password")), env) or "",
    )

    flags_data = _section(data, "flags", dict) or {}
    flags = Flags(
        follow_redirects=_tri_state(flags_data.get("follow_redirects"), "follow_redirects"),
        verify_tls=_tri_state(flags_data.get("verify_tls"), "verify_tls"),
        use_color=_tri_state(flags_data.get("use_color"), "use_color"),
    )

    variables = {
        str(k): resolve_value(_scalar(v), env) or "" for k, v in (_section(data, "variables", dict) or {}).items()
    }

    repeat = _section(data, "repeat", dict) or {}

    timeout = _as_int(data.get("timeout"), DEFAULT_TIMEOUT)
    if timeout <= 0:
        timeout = DEFAULT_TIMEOUT

    return Config(
        url=resolve_value(_scalar(data.get("url")), env) or "",
        headers=headers,
        display=_scalar(data.get("display")) or "",
        timeout=timeout,
        client_auth=client_auth,
        flags=flags,
        variables=variables,
        request=_request_defaults(_section(data, "request", dict) or {}),
        repeat_times=_as_int(repeat.get("times"), 1),
        repeat_concurrent=_as_int(repeat.get("concurrent"), 1),
        config_dir=config_dir,
    )


def _request_defaults(req: dict) -> RequestDefaults:
    body = req.get("body")
    if isinstance(body, dict | list):
        body = json.dumps(body)
    elif body is not None:
        body = str(body)

    form_data = req.get("form")
    form: list[tuple[str, str]] = []
    if isinstance(form_data, dict):
        form = [(str(k), _scalar(v) or "") for k, v in form_data.items()]
    elif isinstance(form_data, list):
        for item in form_data:
            if isinstance(item, str) and "=" in item:
                k, v = item.split("=", 1)
                form.append((k.strip(), v))
    elif form_data is not None:
        raise _invalid("'request.form' must be a mapping of field names to values")

    encoding = str(req.get("form_encoding") or "auto").lower()
    if encoding not in ("auto", "urlencoded", "multipart"):
        raise _invalid(f"unknown form encoding '{encoding}'")

    return RequestDefaults(
        method=str(req.get("method") or "").upper(),
        body=body,
        template=_scalar(req.get("template")),
        form=tuple(form),
        form_encoding=encoding,
    )


def _section(data: dict, name: str, kind: type) -> Any:
    value = data.get(name)
    if value is not None and not isinstance(value, kind):
        raise _invalid(f"'{name}' must be a {'mapping' if kind is dict else kind.__name__}")
    return value


def _scalar(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _tri_state(value: Any, name: str) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise _invalid(f"flag '{name}' must be true or false, got '{value}'")


def _as_int(value: Any, default: int) -> int:
    """Parse an integer setting; anything unusable falls back to default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _invalid(message: str) -> ConfigError:
    return ConfigError(f"{message}. A valid configuration looks like:\n{EXAMPLE_CONFIG}")
