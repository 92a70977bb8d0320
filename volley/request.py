"""volley request - URL resolution, request specs and execution plans."""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from volley.auth import AuthProfile
from volley.body import ResolvedBody, coerce_json
from volley.config import DEFAULT_TIMEOUT
from volley.errors import MissingURL
from volley.headers import canonical_header_key, resolve_headers

BODYLESS_METHODS = ("GET", "HEAD")


@dataclass(frozen=True)
class RequestSpec:
    """A fully resolved request, shared read-only by every iteration."""

    method: str
    url: str
    headers: Mapping[str, str]
    body: bytes | None = None

    def wire_headers(self) -> dict[str, str]:
        return {canonical_header_key(k): v for k, v in self.headers.items()}


@dataclass(frozen=True)
class ExecutionPlan:
    repeat_times: int = 1
    concurrency: int = 1
    follow_redirects: bool = True
    verify_tls: bool = True
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        object.__setattr__(self, "repeat_times", max(1, int(self.repeat_times or 1)))
        object.__setattr__(self, "concurrency", max(1, int(self.concurrency or 1)))

    @property
    def labelled(self) -> bool:
        """Whether output must carry iteration labels."""
        return self.repeat_times > 1


def build_url(path: str | None, base_url: str | None) -> str:
    """Compute the request URL.

    A scheme-prefixed path is used verbatim; anything else is appended
    to the configured base URL.
    """
    path = path or ""
    if path.startswith(("http://", "https://")):
        return path
    if base_url:
        return base_url + path
    if not path:
        raise MissingURL("need a URL to make a request")
    raise MissingURL(f"invalid URL '{path}': no base URL configured for a relative path")


def resolve_follow_redirects(flag: bool | None, config_default: bool = True) -> bool:
    """Flag (already last-one-wins resolved by the CLI) beats the config default."""
    if flag is None:
        return config_default
    return flag


def build_request_spec(
    method: str | None,
    url: str,
    body: ResolvedBody | None = None,
    cli_headers: Iterable[str] = (),
    config_headers: dict[str, str] | None = None,
    auth: AuthProfile | None = None,
) -> RequestSpec:
    """Combine method, URL, body, headers and basic auth into a RequestSpec."""
    if not url:
        raise MissingURL("need a URL to make a request")

    method = (method or "GET").upper()
    body = body or ResolvedBody()
    content = None if method in BODYLESS_METHODS else body.content

    headers = resolve_headers(
        cli_headers,
        config_headers,
        has_body=content is not None,
        content_type=body.content_type,
    )

    if content is not None and body.form:
        # The multipart boundary must match the encoded payload.
        headers["CONTENT-TYPE"] = body.content_type

    if auth is not None:
        authorization = auth.authorization_header()
        if authorization and "AUTHORIZATION" not in headers:
            headers["AUTHORIZATION"] = authorization

    if content is not None and not body.form and "json" in headers.get("CONTENT-TYPE", "").lower():
        content = coerce_json(content)

    return RequestSpec(
        method=method,
        url=url,
        headers=MappingProxyType(headers),
        body=content,
    )
