"""Line-delimited JSON-RPC dispatcher for the push-guard tools.

One request is read, handled to completion and answered before the next line
is read. Requests without an id are notifications and never get a response.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from enum import IntEnum, StrEnum
from typing import IO, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from git_guardian.observability import get_logger
from git_guardian.tools import ToolDescriptor

logger = get_logger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "git-guardian"
SERVER_VERSION = "1.0.0"


class ErrorCode(IntEnum):
    """Reserved JSON-RPC error codes."""

    PARSE_ERROR = -32700
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class Method(StrEnum):
    """Methods the dispatcher answers."""

    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    NOTIFICATIONS_INITIALIZED = "notifications/initialized"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    RESOURCES_LIST = "resources/list"
    PROMPTS_LIST = "prompts/list"
    PING = "ping"


NOTIFICATION_METHODS = frozenset({Method.INITIALIZED, Method.NOTIFICATIONS_INITIALIZED})
QUIET_METHODS = frozenset({Method.RESOURCES_LIST, Method.PROMPTS_LIST, Method.PING})


class ProtocolError(Exception):
    """Raised while handling a request; becomes an error response."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ProtocolStreamError(RuntimeError):
    """Raised when the input stream cannot be read."""


class Request(BaseModel):
    """One decoded input line."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    id: Any = None
    method: str = ""
    params: Any = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class ErrorBody(BaseModel):
    """Error member of a response."""

    model_config = ConfigDict(extra="forbid")

    code: int
    message: str


class Response(BaseModel):
    """One output line; carries exactly one of ``result`` or ``error``."""

    model_config = ConfigDict(extra="forbid")

    jsonrpc: str = JSONRPC_VERSION
    id: Any = None
    result: Any = None
    error: ErrorBody | None = None
    has_result: bool = Field(default=False, exclude=True)

    @model_validator(mode="after")
    def validate_exclusive_payload(self) -> Response:
        """Reject responses carrying both or neither payload."""
        if self.has_result == (self.error is not None):
            raise ValueError("response must carry exactly one of result or error")
        return self

    @classmethod
    def success(cls, msg_id: Any, result: Any) -> Response:
        return cls(id=msg_id, result=result, has_result=True)

    @classmethod
    def failure(cls, msg_id: Any, code: int, message: str) -> Response:
        return cls(id=msg_id, error=ErrorBody(code=code, message=message))

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-RPC object for this response."""
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump()
        else:
            payload["result"] = self.result
        return payload


class ToolCallParams(BaseModel):
    """Payload of a ``tools/call`` request."""

    model_config = ConfigDict(extra="ignore")

    name: str
    arguments: Any = None


def to_text(value: Any) -> str:
    """Serialize a tool result as indented JSON text."""
    try:
        return json.dumps(value, indent=2)
    except (TypeError, ValueError):
        return str(value)


class ProtocolServer:
    """Synchronous request/response loop over a pair of streams.

    ``reader`` should be a binary stream such as ``sys.stdin.buffer`` so that
    each line is decoded separately; text streams are accepted as well.
    """

    def __init__(
        self,
        tools: Mapping[str, ToolDescriptor],
        *,
        reader: IO[bytes] | IO[str],
        writer: IO[str],
        server_name: str = SERVER_NAME,
        server_version: str = SERVER_VERSION,
    ) -> None:
        self._tools = tools
        self._reader = reader
        self._writer = writer
        self._server_name = server_name
        self._server_version = server_version
        self._methods: Mapping[Method, Callable[[Request], Any]] = {
            Method.INITIALIZE: self._initialize,
            Method.TOOLS_LIST: self._tools_list,
            Method.TOOLS_CALL: self._tools_call,
            Method.RESOURCES_LIST: lambda request: {"resources": []},
            Method.PROMPTS_LIST: lambda request: {"prompts": []},
            Method.PING: lambda request: {},
        }

    def serve(self) -> None:
        """Process lines until end of stream.

        Raises ``ProtocolStreamError`` when the stream itself fails.
        """
        logger.info("server.start", tools=list(self._tools))
        while True:
            try:
                line = self._reader.readline()
            except OSError as error:
                raise ProtocolStreamError(f"read error: {error}") from error
            if not line:
                logger.info("server.stop", reason="end of input")
                return

            response = self.handle_line(line)
            if response is not None:
                self._write(response)

    def handle_line(self, line: bytes | str) -> dict[str, Any] | None:
        """Handle one input line and return the response object, if any."""
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as error:
                return self._parse_error(error)
        if not line.strip():
            return None

        try:
            payload = json.loads(line)
            request = Request.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as error:
            return self._parse_error(error)

        response = self.dispatch(request)
        return None if response is None else response.to_wire()

    def _parse_error(self, error: Exception) -> dict[str, Any]:
        logger.warning("request.parse_error", error=str(error))
        return Response.failure(None, ErrorCode.PARSE_ERROR, f"Parse error: {error}").to_wire()

    def dispatch(self, request: Request) -> Response | None:
        """Route a decoded request by method name."""
        method = _known_method(request.method)
        if method not in QUIET_METHODS:
            logger.info("request.handle", method=request.method, id=request.id)

        if method in NOTIFICATION_METHODS:
            return None
        if request.is_notification:
            logger.info("notification.ignored", method=request.method)
            return None
        if method is None:
            logger.warning("method.unknown", method=request.method)
            return Response.failure(
                request.id, ErrorCode.METHOD_NOT_FOUND, f"Method not found: {request.method}"
            )

        try:
            result = self._methods[method](request)
        except ProtocolError as error:
            return Response.failure(request.id, error.code, error.message)
        return Response.success(request.id, result)

    def _initialize(self, request: Request) -> dict[str, Any]:
        logger.info("server.initialized")
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "serverInfo": {"name": self._server_name, "version": self._server_version},
            "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
        }

    def _tools_list(self, request: Request) -> dict[str, Any]:
        return {
            "tools": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": {"type": "object", "properties": {}},
                }
                for tool in self._tools.values()
            ]
        }

    def _tools_call(self, request: Request) -> dict[str, Any]:
        try:
            params = ToolCallParams.model_validate(request.params)
        except ValidationError as error:
            raise ProtocolError(ErrorCode.INVALID_PARAMS, f"Invalid params: {error}") from error

        tool = self._tools.get(params.name)
        if tool is None:
            logger.warning("tool.not_found", tool=params.name)
            raise ProtocolError(ErrorCode.INVALID_PARAMS, f"Tool not found: {params.name}")

        logger.info("tool.call", tool=params.name)
        try:
            result = tool.handler(params.arguments)
        except Exception as error:
            logger.exception("tool.failed", tool=params.name)
            raise ProtocolError(
                ErrorCode.INTERNAL_ERROR, f"Tool execution error: {error}"
            ) from error

        return {"content": [{"type": "text", "text": to_text(result)}]}

    def _write(self, response: dict[str, Any]) -> None:
        """Write one response line and flush it."""
        try:
            data = json.dumps(response)
        except (TypeError, ValueError) as error:
            logger.error("response.encode_failed", error=str(error))
            data = json.dumps(
                Response.failure(
                    response.get("id"), ErrorCode.INTERNAL_ERROR, f"Internal error: {error}"
                ).to_wire()
            )
        try:
            self._writer.write(data + "\n")
            self._writer.flush()
        except OSError as error:
            logger.error("response.write_failed", error=str(error), id=response.get("id"))


def _known_method(name: str) -> Method | None:
    """Return the enum member for a known method name."""
    try:
        return Method(name)
    except ValueError:
        return None
