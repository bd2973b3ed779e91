"""
Error taxonomy for AgentNetwork.

Every error that can cross the RPC boundary carries a stable JSON-RPC ``code``
so callers can branch on it without parsing the message text.
"""
from typing import Any, Optional

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Application codes
NOT_FOUND = -32001
LIVENESS_FAILED = -32002
CONFLICT = -32003


class AgentNetworkError(Exception):
    """Base class for errors serialized as JSON-RPC error objects."""

    code = INTERNAL_ERROR

    def __init__(self, message: str, data: Optional[Any] = None) -> None:
        self.message = message
        self.data = data
        super().__init__(message)

    def to_dict(self) -> dict:
        err = {"code": self.code, "message": self.message}
        if self.data is not None:
            err["data"] = self.data
        return err


class InvalidRequest(AgentNetworkError):
    """Malformed or missing arguments; raised before any state is touched."""

    code = INVALID_PARAMS


class MalformedRequest(InvalidRequest):
    code = INVALID_REQUEST


class MethodNotFound(InvalidRequest):
    code = METHOD_NOT_FOUND


class ParseError(InvalidRequest):
    code = PARSE_ERROR


class NotFound(AgentNetworkError):
    code = NOT_FOUND


class LivenessError(AgentNetworkError):
    """One or more agents did not answer the liveness probe."""

    code = LIVENESS_FAILED

    def __init__(self, unreachable: list[str]) -> None:
        self.unreachable = list(unreachable)
        super().__init__(
            f"Agents not live: {', '.join(self.unreachable)}",
            data={"unreachable": self.unreachable},
        )


class ConflictError(AgentNetworkError):
    """Id allocation raced with another writer; the caller should retry."""

    code = CONFLICT


class TransportError(AgentNetworkError):
    """The RPC call did not complete (network failure or non-success HTTP status).

    Raised by the client only; never serialized onto the wire.
    """

    code = None

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


_ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (InvalidRequest, MalformedRequest, MethodNotFound, ParseError, NotFound, ConflictError)
}


def error_from_dict(err: dict) -> AgentNetworkError:
    """Rebuild a typed exception from a JSON-RPC error object."""
    code = err.get("code")
    message = err.get("message", "")
    data = err.get("data")
    if code == LIVENESS_FAILED:
        unreachable = data.get("unreachable", []) if isinstance(data, dict) else []
        return LivenessError(unreachable)
    cls = _ERRORS_BY_CODE.get(code)
    if cls is not None:
        return cls(message, data)
    exc = AgentNetworkError(message, data)
    exc.code = code
    return exc
