"""Custom exceptions for refillguard."""


class GuaranteeException(Exception):
    """Base class for refillguard exceptions with HTTP status code.

    Callers exposing these over HTTP can map ``status_code`` directly to
    a response status.
    """
    status_code: int = 500

    def __init__(self, message: str = "Guarantee error"):
        self.message = message
        super().__init__(message)


class ConfigurationError(GuaranteeException):
    """Raised when a required identifier (e.g. user id) is missing.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, message: str = "User ID is required"):
        super().__init__(message)


class ValidationError(GuaranteeException):
    """Raised when administrative input is malformed.

    Covers non-list patterns, invalid or unsafe regexes, out-of-range
    default durations and unknown enum values.
    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, message: str = "Invalid input", field: str | None = None):
        self.field = field
        super().__init__(message)


class OwnershipError(GuaranteeException):
    """Raised when a rule mutation targets a rule the caller does not own.

    Reported as not-found so the existence of other users' rules never leaks.
    Maps to HTTP 404 Not Found.
    """
    status_code = 404

    def __init__(self, rule_id: int | None = None):
        self.rule_id = rule_id
        super().__init__("Rule not found")


class PatternError(GuaranteeException):
    """Raised when a single regex pattern is unsafe or does not compile.

    Evaluation code catches this and skips the pattern.
    """
    status_code = 400

    def __init__(self, pattern: str, detail: str = "Invalid pattern"):
        self.pattern = pattern
        self.detail = detail
        super().__init__(f"{detail}: {pattern[:80]}")
