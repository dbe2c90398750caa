"""Tests for the line-delimited JSON-RPC dispatcher."""

from __future__ import annotations

import io
import json
from collections.abc import Mapping
from typing import Any

import pytest
from git_guardian.server import (
    PROTOCOL_VERSION,
    ErrorCode,
    ProtocolServer,
    ProtocolStreamError,
    Response,
)
from git_guardian.tools import ToolDescriptor, ToolExecutionError, build_tool_registry


def echo_tool(arguments: Any) -> dict[str, Any]:
    return {"success": True, "arguments": arguments}


def failing_tool(arguments: Any) -> dict[str, Any]:
    raise ToolExecutionError("failed to get unpushed commits: boom")


def make_registry() -> Mapping[str, ToolDescriptor]:
    return build_tool_registry(
        [
            ToolDescriptor(name="echo", description="Echo arguments", handler=echo_tool),
            ToolDescriptor(name="explode", description="Always fails", handler=failing_tool),
        ]
    )


def run_session(*messages: Any, raw_lines: tuple[str, ...] = ()) -> list[dict[str, Any]]:
    """Feed messages through a server and return the decoded response lines."""
    lines = [json.dumps(message) for message in messages] + list(raw_lines)
    reader = io.StringIO("".join(line + "\n" for line in lines))
    writer = io.StringIO()
    ProtocolServer(make_registry(), reader=reader, writer=writer).serve()
    output = writer.getvalue()
    assert output == "" or output.endswith("\n")
    return [json.loads(line) for line in output.splitlines()]


@pytest.mark.unit
def test_initialize_reports_server_metadata() -> None:
    [response] = run_session({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})

    assert response["id"] == 1
    assert "error" not in response
    assert response["result"]["protocolVersion"] == PROTOCOL_VERSION
    assert response["result"]["serverInfo"] == {"name": "git-guardian", "version": "1.0.0"}
    assert response["result"]["capabilities"] == {"tools": {}, "resources": {}, "prompts": {}}


@pytest.mark.unit
@pytest.mark.parametrize("method", ["initialized", "notifications/initialized"])
def test_initialized_notifications_are_silent(method: str) -> None:
    assert run_session({"jsonrpc": "2.0", "method": method}) == []
    assert run_session({"jsonrpc": "2.0", "id": 7, "method": method}) == []


@pytest.mark.unit
def test_unknown_notification_is_ignored() -> None:
    assert run_session({"jsonrpc": "2.0", "method": "notifications/cancelled"}) == []
    assert run_session({"jsonrpc": "2.0", "id": None, "method": "tools/call"}) == []


@pytest.mark.unit
def test_unknown_method_with_id_is_not_found() -> None:
    [response] = run_session({"jsonrpc": "2.0", "id": "abc", "method": "sampling/create"})

    assert response["id"] == "abc"
    assert response["error"] == {
        "code": ErrorCode.METHOD_NOT_FOUND,
        "message": "Method not found: sampling/create",
    }
    assert "result" not in response


@pytest.mark.unit
def test_tools_list_returns_registry_in_order() -> None:
    [response] = run_session({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})

    assert response["result"]["tools"] == [
        {
            "name": "echo",
            "description": "Echo arguments",
            "inputSchema": {"type": "object", "properties": {}},
        },
        {
            "name": "explode",
            "description": "Always fails",
            "inputSchema": {"type": "object", "properties": {}},
        },
    ]


@pytest.mark.unit
def test_tools_call_wraps_result_as_indented_text() -> None:
    [response] = run_session(
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": "echo", "arguments": {"files": ["a.go"]}},
        }
    )

    content = response["result"]["content"]
    assert len(content) == 1
    assert content[0]["type"] == "text"
    assert content[0]["text"] == json.dumps(
        {"success": True, "arguments": {"files": ["a.go"]}}, indent=2
    )


@pytest.mark.unit
@pytest.mark.parametrize("arguments", [None, {}, {"files": ["x"]}, [1, 2]])
def test_tools_call_unknown_tool_is_invalid_params(arguments: Any) -> None:
    [response] = run_session(
        {
            "jsonrpc": "2.0",
            "id": 4,
            "method": "tools/call",
            "params": {"name": "nope", "arguments": arguments},
        }
    )

    assert response["error"]["code"] == -32602
    assert response["error"]["message"] == "Tool not found: nope"


@pytest.mark.unit
@pytest.mark.parametrize("params", [None, {"arguments": {}}, "run_checks", {"name": 5}])
def test_tools_call_malformed_params(params: Any) -> None:
    [response] = run_session({"jsonrpc": "2.0", "id": 5, "method": "tools/call", "params": params})

    assert response["error"]["code"] == -32602
    assert response["error"]["message"].startswith("Invalid params:")


@pytest.mark.unit
def test_tools_call_handler_error_is_execution_error() -> None:
    [response] = run_session(
        {"jsonrpc": "2.0", "id": 6, "method": "tools/call", "params": {"name": "explode"}}
    )

    assert response["error"] == {
        "code": -32603,
        "message": "Tool execution error: failed to get unpushed commits: boom",
    }


@pytest.mark.unit
def test_stub_methods_and_ping() -> None:
    responses = run_session(
        {"jsonrpc": "2.0", "id": 1, "method": "resources/list"},
        {"jsonrpc": "2.0", "id": 2, "method": "prompts/list"},
        {"jsonrpc": "2.0", "id": 3, "method": "ping"},
    )

    assert [response["result"] for response in responses] == [
        {"resources": []},
        {"prompts": []},
        {},
    ]


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["{not json", "[1, 2, 3]", '"just a string"', '{"method": 5}'])
def test_parse_error_has_null_id_and_loop_continues(raw: str) -> None:
    responses = run_session(
        {"jsonrpc": "2.0", "id": 9, "method": "ping"},
        raw_lines=(raw, json.dumps({"jsonrpc": "2.0", "id": 10, "method": "ping"})),
    )

    assert [response["id"] for response in responses] == [9, None, 10]
    assert responses[1]["error"]["code"] == ErrorCode.PARSE_ERROR
    assert responses[1]["error"]["message"].startswith("Parse error:")


@pytest.mark.unit
def test_every_request_gets_one_response_in_order() -> None:
    messages = [
        {"jsonrpc": "2.0", "id": 1, "method": "initialize"},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": "two", "method": "tools/list"},
        {"jsonrpc": "2.0", "method": "notifications/progress"},
        {"jsonrpc": "2.0", "id": 3, "method": "unknown"},
        {"jsonrpc": "2.0", "id": 4.5, "method": "tools/call", "params": {"name": "echo"}},
        {"jsonrpc": "2.0", "id": 0, "method": "ping"},
    ]

    responses = run_session(*messages)

    assert [response["id"] for response in responses] == [1, "two", 3, 4.5, 0]
    for response in responses:
        assert ("result" in response) != ("error" in response)


@pytest.mark.unit
def test_undecodable_line_is_a_parse_error_and_loop_continues() -> None:
    reader = io.BytesIO(
        b'\xff\xfe garbage\n{"jsonrpc": "2.0", "id": 1, "method": "ping"}\n'
    )
    writer = io.StringIO()

    ProtocolServer(make_registry(), reader=reader, writer=writer).serve()

    responses = [json.loads(line) for line in writer.getvalue().splitlines()]
    assert [response["id"] for response in responses] == [None, 1]
    assert responses[0]["error"]["code"] == ErrorCode.PARSE_ERROR
    assert responses[0]["error"]["message"].startswith("Parse error:")
    assert responses[1]["result"] == {}


@pytest.mark.unit
def test_binary_reader_handles_utf8_payloads() -> None:
    request = {
        "jsonrpc": "2.0",
        "id": "ü",
        "method": "tools/call",
        "params": {"name": "echo", "arguments": {"details": "naïve"}},
    }
    reader = io.BytesIO(json.dumps(request, ensure_ascii=False).encode("utf-8") + b"\n")
    writer = io.StringIO()

    ProtocolServer(make_registry(), reader=reader, writer=writer).serve()

    [response] = [json.loads(line) for line in writer.getvalue().splitlines()]
    assert response["id"] == "ü"
    assert json.loads(response["result"]["content"][0]["text"])["arguments"] == {
        "details": "naïve"
    }


@pytest.mark.unit
def test_blank_lines_are_skipped() -> None:
    responses = run_session(
        {"jsonrpc": "2.0", "id": 1, "method": "ping"},
        raw_lines=("", "   "),
    )

    assert len(responses) == 1


@pytest.mark.unit
def test_read_failure_is_fatal() -> None:
    class BrokenReader(io.StringIO):
        def readline(self, size: int | None = -1) -> str:  # type: ignore[override]
            raise OSError("stream closed")

    server = ProtocolServer(make_registry(), reader=BrokenReader(), writer=io.StringIO())

    with pytest.raises(ProtocolStreamError, match="read error"):
        server.serve()


@pytest.mark.unit
def test_end_of_stream_returns_cleanly() -> None:
    writer = io.StringIO()

    ProtocolServer(make_registry(), reader=io.StringIO(""), writer=writer).serve()

    assert writer.getvalue() == ""


@pytest.mark.unit
def test_response_requires_exactly_one_payload() -> None:
    with pytest.raises(ValueError):
        Response(id=1)

    assert Response.success(1, None).to_wire() == {"jsonrpc": "2.0", "id": 1, "result": None}
    assert Response.failure(None, -32700, "Parse error: x").to_wire() == {
        "jsonrpc": "2.0",
        "id": None,
        "error": {"code": -32700, "message": "Parse error: x"},
    }
