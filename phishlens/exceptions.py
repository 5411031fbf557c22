"""Error taxonomy for URL analysis."""


class PhishLensError(Exception):
    """Base class for all PhishLens errors."""


class ValidationError(PhishLensError, ValueError):
    """A URL was rejected before any signal was fetched."""

    def __init__(self, message: str, error_type: str = "invalid-format"):
        super().__init__(message)
        self.error_type = error_type


class ProviderError(PhishLensError):
    """A single signal source failed.

    ``code`` is one of network, auth, parsing, rate_limit, timeout,
    unavailable or unknown. ``retryable`` marks transient failures.
    """

    def __init__(self, message: str, code: str = "unknown", retryable: bool = False):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class ConfigurationError(PhishLensError, ValueError):
    """A scoring or orchestration configuration was rejected."""

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class InsufficientDataError(PhishLensError):
    """Fewer signal providers succeeded than the configured minimum."""

    def __init__(self, succeeded: int, required: int):
        self.succeeded = succeeded
        self.required = required
        super().__init__(
            f"Insufficient data: {succeeded} services succeeded, {required} required"
        )
