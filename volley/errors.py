"""volley errors - everything raised while resolving a request."""


class VolleyError(Exception):
    """Base class for errors that abort an invocation."""


class ConfigError(VolleyError):
    pass


class CredentialError(VolleyError):
    pass


class MixedCredentialFormat(CredentialError):
    pass


class CredentialNotFound(CredentialError):
    pass


class InvalidCertificate(CredentialError):
    pass


class InvalidClientCertificate(CredentialError):
    pass


class TemplateError(VolleyError):
    pass


class BodyError(VolleyError):
    """A body source could not be read or encoded."""


class BodyParseError(BodyError):
    pass


class UnsupportedEncoding(BodyError):
    pass


class HeaderParseError(VolleyError):
    pass


class MissingURL(VolleyError):
    pass


class NetworkError(VolleyError):
    """Connection, TLS or timeout failure during one execution."""
