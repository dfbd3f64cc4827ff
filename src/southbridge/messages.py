"""JSON-RPC 2.0 message types exchanged with the agent.

Requests, responses and notifications share one inbound stream, so every
decoded payload is turned into one of the three variants before anything else
looks at it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from southbridge.errors import MalformedMessage

JSONRPC_VERSION = "2.0"

# Peer ids may be numbers or strings depending on the agent implementation.
RequestId = Union[int, str]

USER_REJECTED = -32000
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


@dataclass(frozen=True)
class Request:
    id: RequestId
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method, "params": self.params}


@dataclass(frozen=True)
class Notification:
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "method": self.method, "params": self.params}


@dataclass(frozen=True)
class Response:
    id: RequestId
    result: Any = None
    error: dict[str, Any] | None = None

    @classmethod
    def success(cls, request_id: RequestId, result: Any) -> "Response":
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: RequestId, code: int, message: str) -> "Response":
        return cls(id=request_id, error={"code": code, "message": message})

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error
        else:
            payload["result"] = self.result
        return payload


Message = Union[Request, Response, Notification]


def _valid_id(value: Any) -> bool:
    # bool is an int subclass but never a valid id
    return isinstance(value, (int, str)) and not isinstance(value, bool)


def _params(raw: dict[str, Any]) -> dict[str, Any]:
    params = raw.get("params")
    if params is None:
        return {}
    if not isinstance(params, dict):
        raise MalformedMessage("params must be an object", raw)
    return params


def parse_message(raw: Any) -> Message:
    """Turn a decoded JSON payload into a :data:`Message` variant.

    Raises:
        MalformedMessage: the payload is not a JSON-RPC object we can route.
    """
    if not isinstance(raw, dict):
        raise MalformedMessage("message is not a JSON object", raw)
    version = raw.get("jsonrpc")
    if version is not None and version != JSONRPC_VERSION:
        raise MalformedMessage(f"unsupported jsonrpc version {version!r}", raw)

    method = raw.get("method")
    msg_id = raw.get("id")
    if msg_id is not None and not _valid_id(msg_id):
        raise MalformedMessage("id must be a number or a string", raw)

    if method is not None:
        if not isinstance(method, str) or not method:
            raise MalformedMessage("method must be a non-empty string", raw)
        if msg_id is None:
            return Notification(method=method, params=_params(raw))
        return Request(id=msg_id, method=method, params=_params(raw))

    if msg_id is None:
        raise MalformedMessage("message has neither id nor method", raw)

    error = raw.get("error")
    if error is not None:
        if not isinstance(error, dict):
            raise MalformedMessage("error must be an object", raw)
        code = error.get("code")
        if not isinstance(code, int) or isinstance(code, bool):
            code = INTERNAL_ERROR
        normalized = {"code": code, "message": str(error.get("message", "Error"))}
        if "data" in error:
            normalized["data"] = error["data"]
        return Response(id=msg_id, error=normalized)
    return Response(id=msg_id, result=raw.get("result"))
