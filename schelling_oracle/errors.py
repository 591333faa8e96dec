"""
Error kinds raised by the oracle protocol.

Every error carries a stable ``code`` (surfaced as a request failure reason
and in API error bodies) and the HTTP status the API answers with.
"""


class OracleError(Exception):
    """Base class for recoverable protocol errors."""

    code = "OracleError"
    status_code = 400

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class InvalidRequest(OracleError):
    code = "InvalidRequest"
    status_code = 400


class InvalidCommitment(OracleError):
    code = "InvalidCommitment"
    status_code = 400


class UnknownRequest(OracleError):
    code = "UnknownRequest"
    status_code = 404


class DuplicateCommitment(OracleError):
    code = "DuplicateCommitment"
    status_code = 409


class DuplicateReveal(OracleError):
    code = "DuplicateReveal"
    status_code = 409


class WindowClosed(OracleError):
    code = "WindowClosed"
    status_code = 409


class AlreadySettled(OracleError):
    code = "AlreadySettled"
    status_code = 409


class RoundStillOpen(OracleError):
    code = "RoundStillOpen"
    status_code = 409


class RequestFailed(OracleError):
    """Raised when a settled value is asked of a request that failed."""

    code = "RequestFailed"
    status_code = 409

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(detail or f"Request failed: {reason}")
        self.reason = reason


class NoMatchingCommitment(OracleError):
    code = "NoMatchingCommitment"
    status_code = 422


class InsufficientReveals(OracleError):
    code = "InsufficientReveals"
    status_code = 409


class NoValidReveals(OracleError):
    """Every revealed value deviated beyond the validity threshold."""

    code = "NoValidReveals"
    status_code = 409
