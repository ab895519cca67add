"""
Error taxonomy for idea processing.
Each error carries the HTTP status it is reported with at the request boundary.
"""


class IdeaFlowError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(IdeaFlowError):
    """Bad caller input. Not retried."""
    status_code = 400


class UpstreamUnavailable(IdeaFlowError):
    """The LLM call failed or timed out. Safe to retry the whole phase."""
    status_code = 502


class DecodeError(IdeaFlowError):
    """The LLM returned non-JSON or schema-violating content."""
    status_code = 502


class PersistenceError(IdeaFlowError):
    """The store rejected a write or read."""
    status_code = 500
