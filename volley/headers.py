"""volley headers - default, configured and command-line request headers."""

import platform
from typing import Iterable

from volley import __version__
from volley.errors import HeaderParseError

DEFAULT_ACCEPT = "application/json;q=1.0, */*;q=0.8"
DEFAULT_CONTENT_TYPE = "application/json"


def user_agent() -> str:
    system = platform.system().title() or "Unknown"
    machine = platform.machine().upper() or "UNKNOWN"
    return f"volley/{__version__} ({system} {machine})"


def normalize_header_key(name: str) -> str:
    return name.strip().upper()


def canonical_header_key(name: str) -> str:
    """Wire casing for a header name: 'CONTENT-TYPE' -> 'Content-Type'."""
    return "-".join(part.capitalize() for part in name.strip().split("-"))


def parse_header(header: str) -> tuple[str, str]:
    """Parse a 'Name: Value' string. The value may itself contain colons."""
    if ":" not in header:
        raise HeaderParseError(f"could not parse header: '{header}'")
    name, value = header.split(":", 1)
    if not name.strip():
        raise HeaderParseError(f"could not parse header: '{header}'")
    return normalize_header_key(name), value.strip()


def resolve_headers(
    cli_headers: Iterable[str] = (),
    config_headers: dict[str, str] | None = None,
    has_body: bool = False,
    content_type: str | None = None,
) -> dict[str, str]:
    """Merge request headers; later layers overwrite earlier ones.

    Layers: defaults, Content-Type (only with a body), config headers,
    CLI headers. Keys are upper-cased.
    """
    headers = {
        "USER-AGENT": user_agent(),
        "ACCEPT": DEFAULT_ACCEPT,
    }

    if has_body:
        headers["CONTENT-TYPE"] = content_type or DEFAULT_CONTENT_TYPE

    for k, v in (config_headers or {}).items():
        headers[normalize_header_key(k)] = v

    for header in cli_headers:
        name, value = parse_header(header)
        headers[name] = value

    return headers
