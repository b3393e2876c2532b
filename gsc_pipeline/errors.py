"""
Pipeline error taxonomy

Pipeline-level errors (token acquisition, missing connection) abort an
invocation. Item-level errors (one URL, one dimension) are caught by the
services and folded into batch results.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for errors surfaced to API callers as {"error": ...}"""
    status_code = 500


class ConfigurationError(PipelineError):
    """Missing or malformed credential/connection for a project"""
    status_code = 400


class ConnectionNotFound(ConfigurationError):
    """No Search Console connection exists for the project"""
    status_code = 404


class RequestNotFound(PipelineError):
    """Indexing request id does not exist for the project"""
    status_code = 404


class InvalidStateError(PipelineError):
    """Operation not allowed from the record's current status"""
    status_code = 409


class AuthError(PipelineError):
    """Raised when the token endpoint rejects the signed service-account JWT"""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ProviderError(PipelineError):
    """Non-2xx response from a Google API endpoint"""

    def __init__(self, status: int, body: str, context: str = "Google API"):
        super().__init__(f"{context} error [{status}]: {body}")
        self.status = status
        self.body = body
        self.context = context


class QuotaExceeded(ProviderError):
    """Provider signalled that the daily/rate quota is exhausted"""
    pass


class InvalidRequestError(PipelineError):
    """Caller supplied missing or malformed input"""
    status_code = 400
