"""Error types for the auth subsystem.

Expected failures (bad credentials, unknown or revoked refresh tokens) are not
exceptions: they come back as ``AuthResponse(success=False)``. Only the
conditions below are raised.
"""


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration, e.g. no JWT signing secret. Aborts startup."""


class InvalidAccessTokenError(Exception):
    """An inbound bearer token failed signature, expiry or claim checks."""
