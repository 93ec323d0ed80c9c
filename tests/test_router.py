from unittest.mock import MagicMock

import pytest

from gemini_bridge.core.config import BridgeConfig
from gemini_bridge.core.types import ExecutionResult
from gemini_bridge.mcp.router import RequestRouter


@pytest.fixture
def runner():
    return MagicMock(return_value=ExecutionResult(stdout='{"response":"OK"}'))


@pytest.fixture
def router(runner):
    return RequestRouter(BridgeConfig(), runner=runner)


def test_initialize_round_trip(router):
    response = router.dispatch_rpc_message({
        "jsonrpc": "2.0",
        "id": 1,
        "method": "initialize",
        "params": {"protocolVersion": "2025-06-18", "capabilities": {}},
    })
    assert response["id"] == 1
    assert response["result"]["protocolVersion"] == "2025-06-18"
    assert response["result"]["serverInfo"]["name"] == "gemini"


def test_ping_returns_empty_result(router):
    assert router.dispatch_rpc_message({"jsonrpc": "2.0", "id": "p", "method": "ping"}) == {
        "jsonrpc": "2.0",
        "id": "p",
        "result": {},
    }


def test_tools_list(router):
    response = router.dispatch_rpc_message({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
    assert [tool["name"] for tool in response["result"]["tools"]] == ["gemini"]


def test_tools_call_success(router):
    response = router.dispatch_rpc_message({
        "jsonrpc": "2.0",
        "id": 3,
        "method": "tools/call",
        "params": {"name": "gemini", "arguments": {"prompt": "hi", "model": "gemini-2.5-flash"}},
    })
    assert response["result"] == {
        "content": [{"type": "text", "text": "[Gemini gemini-2.5-flash]\nOK"}],
    }


def test_unknown_tool_is_result_not_error(router, runner):
    response = router.dispatch_rpc_message({
        "jsonrpc": "2.0",
        "id": 4,
        "method": "tools/call",
        "params": {"name": "nope", "arguments": {}},
    })
    assert "error" not in response
    assert response["result"]["isError"] is True
    assert response["result"]["content"][0]["text"] == "Unknown tool: nope"
    runner.assert_not_called()


def test_tools_call_without_usable_name_is_unknown_tool(router, runner):
    for msg_id, params in enumerate([{"arguments": {"prompt": "hi"}}, {"name": ""}, {"name": 7}]):
        response = router.dispatch_rpc_message({
            "jsonrpc": "2.0",
            "id": msg_id,
            "method": "tools/call",
            "params": params,
        })
        assert "error" not in response
        assert response["result"]["isError"] is True
        assert response["result"]["content"][0]["text"].startswith("Unknown tool: ")
    runner.assert_not_called()


def test_non_object_params_rejected(router):
    response = router.dispatch_rpc_message({
        "jsonrpc": "2.0",
        "id": 6,
        "method": "tools/call",
        "params": ["gemini"],
    })
    assert response["error"]["code"] == -32602


def test_unknown_method(router):
    response = router.dispatch_rpc_message({"jsonrpc": "2.0", "id": 7, "method": "resources/list"})
    assert response["error"]["code"] == -32601
    assert "resources/list" in response["error"]["message"]


def test_missing_method_with_id(router):
    response = router.dispatch_rpc_message({"jsonrpc": "2.0", "id": 8})
    assert response["error"]["code"] == -32600


def test_notifications_get_no_response(router):
    assert router.dispatch_rpc_message({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None
    assert router.dispatch_rpc_message({"jsonrpc": "2.0", "method": "notifications/cancelled"}) is None
    assert router.dispatch_rpc_message({"jsonrpc": "2.0"}) is None


def test_unexpected_handler_failure_is_internal_error(router, monkeypatch):
    monkeypatch.setattr(
        "gemini_bridge.mcp.router.handle_list_tools",
        MagicMock(side_effect=RuntimeError("catalog exploded")),
    )
    response = router.dispatch_rpc_message({"jsonrpc": "2.0", "id": 9, "method": "tools/list"})
    assert response["error"]["code"] == -32603


def test_only_tool_calls_go_to_background():
    assert RequestRouter.should_dispatch_in_background({"id": 1, "method": "tools/call"})
    assert not RequestRouter.should_dispatch_in_background({"method": "tools/call"})
    assert not RequestRouter.should_dispatch_in_background({"id": 1, "method": "ping"})
