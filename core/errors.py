"""Sentinel exception hierarchy.

Everything raised on purpose by core/ inherits from SentinelError so the
service layer can tell expected failures from bugs.
"""


class SentinelError(Exception):
    """Base exception for all sentinel errors."""


class ConfigError(SentinelError):
    """Invalid environment configuration."""


class ValidationError(SentinelError):
    """Caller input that never reaches an upstream."""


class InvalidPackageNameError(ValidationError):
    """Package name (or pinned version) outside the npm grammar."""

    def __init__(self, package_input: str, reason: str) -> None:
        super().__init__(reason)
        self.package_input = package_input


class NoPackagesProvidedError(ValidationError):
    """A package tool was called with an empty list."""

    def __init__(self) -> None:
        super().__init__("No package names provided")


class UpstreamError(SentinelError):
    """Failure talking to npm, Bundlephobia, npms.io, OSV or GitHub."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class RegistryError(UpstreamError):
    """The upstream answered with a non-2xx status."""

    def __init__(self, status: int, status_text: str, *, url: str = "") -> None:
        super().__init__(f"{status} {status_text}".strip(), url=url)
        self.status = status
        self.status_text = status_text

    @property
    def not_found(self) -> bool:
        return self.status == 404


class TransportError(UpstreamError):
    """The request never produced a response (DNS, connect, timeout)."""


class UpstreamFormatError(UpstreamError):
    """The upstream answered 2xx but the body was not what we expect."""


class PackageLookupError(SentinelError):
    """A per-package failure with a caller-facing error string.

    `error` goes to the result's `error` field; `message` is the softer
    one-liner for the `message` field.
    """

    def __init__(self, error: str, message: str = "", **details) -> None:
        super().__init__(error)
        self.error = error
        self.message = message
        self.details = details
