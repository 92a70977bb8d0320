"""volley auth - client certificates, CA trust and basic auth."""

import base64
import ssl
import tempfile
from dataclasses import dataclass
from pathlib import Path

from volley.config import ClientAuth
from volley.errors import (
    CredentialNotFound,
    InvalidCertificate,
    InvalidClientCertificate,
    MixedCredentialFormat,
)

PEM_MARKER = "-----BEGIN"


@dataclass(frozen=True)
class AuthProfile:
    """Resolved transport security for one invocation."""

    basic: tuple[str, str] | None = None
    ca: str | None = None
    ssl_context: ssl.SSLContext | None = None

    def authorization_header(self) -> str | None:
        """Basic Authorization header value, if basic auth is active."""
        if not self.basic:
            return None
        username, password = self.basic
        credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
        return f"Basic {credentials}"


def is_inline_pem(value: str) -> bool:
    return value.strip().startswith(PEM_MARKER)


def merge_client_auth(
    cert: str | None,
    key: str | None,
    ca: str | None,
    username: str | None,
    password: str | None,
    defaults: ClientAuth,
) -> ClientAuth:
    """Overlay non-blank CLI values onto the config defaults, field by field."""

    def pick(override: str | None, default: str) -> str:
        if override and override.strip():
            return override
        return default

    return ClientAuth(
        cert=pick(cert, defaults.cert),
        key=pick(key, defaults.key),
        ca=pick(ca, defaults.ca),
        username=pick(username, defaults.username),
        password=pick(password, defaults.password),
    )


def resolve_auth(
    cert: str | None = None,
    key: str | None = None,
    ca: str | None = None,
    username: str | None = None,
    password: str | None = None,
    defaults: ClientAuth | None = None,
) -> AuthProfile:
    """Build an AuthProfile, loading and validating all TLS material.

    Each of cert/key/ca may be a file path or inline PEM. Raises a
    CredentialError subclass when the material is unusable.
    """
    merged = merge_client_auth(cert, key, ca, username, password, defaults or ClientAuth())

    basic = None
    if merged.username.strip() and merged.password.strip():
        basic = (merged.username.strip(), merged.password.strip())

    cert_src = merged.cert.strip() or None
    key_src = merged.key.strip() or None
    ca_src = merged.ca.strip() or None
    if not (cert_src and key_src):
        cert_src = key_src = None

    context = None
    if ca_src:
        # A bare client context trusts nothing until the CA bundle is loaded.
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        _load_ca(context, ca_src)
    elif cert_src:
        context = ssl.create_default_context()
    if context is not None and cert_src and key_src:
        _load_client_cert(context, cert_src, key_src)

    return AuthProfile(basic=basic, ca=ca_src, ssl_context=context)


def _read_material(source: str, what: str) -> str:
    if is_inline_pem(source):
        return source
    try:
        return Path(source).read_text()
    except OSError as e:
        raise CredentialNotFound(f"could not read {what} file '{source}': {e.strerror}") from e


def _load_ca(context: ssl.SSLContext, source: str) -> None:
    pem = _read_material(source, "CA certificate")
    if PEM_MARKER not in pem:
        raise InvalidCertificate(f"failed to parse CA certificate '{_describe(source)}'")
    try:
        context.load_verify_locations(cadata=pem)
    except (ssl.SSLError, ValueError) as e:
        raise InvalidCertificate(f"failed to parse CA certificate '{_describe(source)}': {e}") from e


def _describe(source: str) -> str:
    return "inline PEM" if is_inline_pem(source) else source


def _load_client_cert(context: ssl.SSLContext, cert: str, key: str) -> None:
    cert_inline = is_inline_pem(cert)
    key_inline = is_inline_pem(key)
    if cert_inline != key_inline:
        raise MixedCredentialFormat(
            "client certificate and key must both be either file paths "
            "or inline PEM content, not mixed",
        )

    if not cert_inline:
        for path, what in ((cert, "client certificate"), (key, "client key")):
            if not Path(path).is_file():
                raise CredentialNotFound(f"could not read {what} file '{path}'")
        _load_chain(context, cert, key)
        return

    with tempfile.TemporaryDirectory(prefix="volley-") as tmp:
        cert_path = Path(tmp) / "cert.pem"
        key_path = Path(tmp) / "key.pem"
        cert_path.write_text(cert.strip() + "\n")
        key_path.touch(mode=0o600)
        key_path.write_text(key.strip() + "\n")
        _load_chain(context, str(cert_path), str(key_path))


def _load_chain(context: ssl.SSLContext, certfile: str, keyfile: str) -> None:
    try:
        context.load_cert_chain(certfile, keyfile)
    except (ssl.SSLError, ValueError, OSError) as e:
        raise InvalidClientCertificate(f"invalid client cert/key: {e}") from e
