"""
Error types for CloudSecure Flows.
"""


class CloudSecureFlowsError(Exception):
    """Base class for all errors raised by this package."""


class ParseError(CloudSecureFlowsError):
    """Malformed IP list entry or date input."""


class ConfigError(CloudSecureFlowsError):
    """Invalid configuration value or filter definition."""


class DecodeError(CloudSecureFlowsError):
    """Upstream response did not match the expected flow schema."""


class RetryableTransportError(CloudSecureFlowsError):
    """Non-success HTTP status or network failure talking to the flow API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryExhaustedError(CloudSecureFlowsError):
    """All retry attempts of an operation failed."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"all {attempts} attempts failed, last error: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class FatalIOError(CloudSecureFlowsError):
    """Input or output file could not be opened or created."""


class PresetNotFoundError(CloudSecureFlowsError):
    """No preset with the requested name exists."""


class UploadError(CloudSecureFlowsError):
    """Uploading a result file to S3 failed."""
