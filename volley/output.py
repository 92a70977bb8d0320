"""volley output - response formatting for the terminal."""

from __future__ import annotations

import json

import click

DISPLAY_BODY = "body"
DISPLAY_STATUS = "status"
DISPLAY_VERBOSE = "verbose"

# Values accepted for `display` in the config file.
_CONFIG_DISPLAY = {
    "status-code-only": DISPLAY_STATUS,
    "status": DISPLAY_STATUS,
    "verbose": DISPLAY_VERBOSE,
}


def display_mode(flag: str | None, config_display: str | None = None) -> str:
    """The CLI switch wins; otherwise the config value; otherwise body."""
    if flag:
        return flag
    return _CONFIG_DISPLAY.get((config_display or "").strip().lower(), DISPLAY_BODY)


# ---------------------------------------------------------------------------
# Styling
# ---------------------------------------------------------------------------


def style_warning(text: str, color: bool = False) -> str:
    text = f"WARNING: {text.upper()}"
    return click.style(text, fg="bright_yellow", bold=True) if color else text


def style_error(text: str, color: bool = False) -> str:
    return click.style(text, fg="white", bg="red") if color else text


def style_stoplight(text: str, stopped: bool, color: bool = False) -> str:
    """Green for go, red for stop."""
    if not color:
        return text
    return click.style(text, fg="bright_red" if stopped else "bright_green")


def style_header(text: str, color: bool = False) -> str:
    text = f"\n{text}\n"
    return click.style(text, fg="cyan", bold=True) if color else text


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def _header_value(headers: dict[str, str], name: str) -> str:
    lower = name.lower()
    for k, v in headers.items():
        if k.lower() == lower:
            return v
    return ""


def format_body(record) -> str:
    """Response body as text; JSON responses are pretty-printed."""
    text = record.body.decode("utf-8", errors="replace")
    if "json" in _header_value(record.headers, "Content-Type").lower():
        try:
            return json.dumps(json.loads(text), indent=2)
        except ValueError:
            pass
    return text


def format_verbose(record, color: bool = False) -> str:
    status = f"Status: {record.status_code} {record.reason}".rstrip()
    lines = [
        style_stoplight(f"{status} ({record.elapsed:.2f} seconds)", record.status_code >= 400, color),
    ]
    for name in sorted(record.headers, key=str.upper):
        lines.append(f"{name.upper()}: {record.headers[name]}")
    lines.append("")
    lines.append(format_body(record))
    return "\n".join(lines)


def prefix_lines(text: str, iteration: int) -> str:
    lines = text.splitlines() or [""]
    return "\n".join(f"{iteration}: {line}" for line in lines)


def format_record(record, mode: str = DISPLAY_BODY, labelled: bool = False, color: bool = False) -> str:
    """Render one ResponseRecord for the given display mode.

    When labelled (repeating), body/status/error output is prefixed
    line by line with the iteration number and verbose output gets an
    "Iteration #n" section header.
    """
    if record.error:
        text = style_error(f"ERROR: {record.error}", color)
        return prefix_lines(text, record.iteration) if labelled else text

    if mode == DISPLAY_STATUS:
        text = str(record.status_code)
    elif mode == DISPLAY_VERBOSE:
        text = format_verbose(record, color)
    else:
        text = format_body(record)

    if not labelled:
        return text
    if mode == DISPLAY_VERBOSE:
        return style_header(f"Iteration #{record.iteration}", color) + "\n" + text
    return prefix_lines(text, record.iteration)
