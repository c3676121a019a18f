from typing import Any, Dict, List, Optional


class RelayError(Exception):
    """Base class for errors that map to an HTTP response."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RelayError):
    """Inbound payload is malformed, incomplete or crosses offices."""
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []


class UpstreamError(RelayError):
    """A Leap CRM create call failed."""
    status_code = 500

    def __init__(self, message: str, upstream_status: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.detail = detail
