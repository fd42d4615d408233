"""
Unit tests for the JSON-RPC dispatcher.

Tests cover:
- initialize and tools/list
- tools/call success and error translation
- Protocol errors: parse, invalid request, unknown method, invalid params
- Notifications and id echoing
- Concurrent tools/call requests on one store
"""

import json
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

import pytest

from cosmo.rpc import PROTOCOL_VERSION, Dispatcher
from cosmo.schema import Capsule, Settings
from cosmo.tools import ToolContext, ToolRegistry

MakeRequest = Callable[..., dict]


def text_of(response: dict) -> str:
    content = response["result"]["content"]
    assert len(content) == 1
    assert content[0]["type"] == "text"
    return content[0]["text"]


# =============================================================================
# Protocol Methods
# =============================================================================


class TestInitialize:
    """Tests for initialize."""

    def test_initialize(
        self, registry: ToolRegistry, failing_store, rpc: MakeRequest
    ) -> None:
        dispatcher = Dispatcher(
            registry=registry,
            settings=Settings(server_name="cosmo-test", server_version="9.9.9"),
            context_factory=lambda: ToolContext(store=failing_store),
        )
        response = dispatcher.handle(rpc("initialize", {"protocolVersion": PROTOCOL_VERSION}))
        assert response == {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {
                "protocolVersion": "2024-11-05",
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "cosmo-test", "version": "9.9.9"},
            },
        }
        assert failing_store.calls == 0

    def test_initialize_does_not_gate_calls(
        self, dispatcher: Dispatcher, call_tool: MakeRequest
    ) -> None:
        """Calls work without a prior initialize."""
        response = dispatcher.handle(call_tool("get_capsule_stats"))
        assert "result" in response


class TestToolsList:
    """Tests for tools/list."""

    def test_equals_registry(
        self, dispatcher: Dispatcher, registry: ToolRegistry, rpc: MakeRequest
    ) -> None:
        response = dispatcher.handle(rpc("tools/list"))
        assert response["result"] == {"tools": registry.descriptors()}

    def test_independent_of_store_state(
        self, dispatcher: Dispatcher, add_capsule, rpc: MakeRequest
    ) -> None:
        before = dispatcher.handle(rpc("tools/list"))
        add_capsule("something", ["x"])
        after = dispatcher.handle(rpc("tools/list"))
        assert before == after

    def test_does_not_open_store(self, registry: ToolRegistry, rpc: MakeRequest) -> None:
        def no_context() -> ToolContext:
            raise AssertionError("store opened")

        dispatcher = Dispatcher(registry=registry, context_factory=no_context)
        assert dispatcher.handle(rpc("tools/list"))["result"]["tools"]

    def test_descriptors_are_well_formed(
        self, dispatcher: Dispatcher, rpc: MakeRequest
    ) -> None:
        tools = dispatcher.handle(rpc("tools/list"))["result"]["tools"]
        for tool in tools:
            assert set(tool) == {"name", "description", "inputSchema"}
            schema = tool["inputSchema"]
            assert schema["type"] == "object"
            for key in schema.get("required", []):
                assert key in schema["properties"]


# =============================================================================
# tools/call
# =============================================================================


class TestToolsCall:
    """Tests for tools/call."""

    @pytest.mark.parametrize(
        ("name", "arguments"),
        [
            ("search_capsules_by_tags", {"tags": ["x"]}),
            ("search_capsules_by_content", {"query": "x"}),
            ("get_recent_capsules", {}),
            ("create_capsule", {"content": "new"}),
            ("get_capsule_stats", {}),
            ("get_capsules_by_tag", {"tags": ["x"]}),
            ("get_tag_cloud", {}),
            ("search_capsules", {"query": "x", "tags": ["x"], "days": 7}),
        ],
    )
    def test_every_tool_returns_text(
        self,
        dispatcher: Dispatcher,
        xy_capsules: list[Capsule],
        call_tool: MakeRequest,
        name: str,
        arguments: dict,
    ) -> None:
        response = dispatcher.handle(call_tool(name, arguments))
        assert response["id"] == 1
        assert text_of(response)

    def test_arguments_default_to_empty(
        self, dispatcher: Dispatcher, call_tool: MakeRequest
    ) -> None:
        response = dispatcher.handle(call_tool("get_recent_capsules"))
        assert "No recent capsules found." in text_of(response)

    def test_null_arguments(self, dispatcher: Dispatcher, rpc: MakeRequest) -> None:
        envelope = rpc("tools/call", {"name": "get_tag_cloud", "arguments": None})
        assert "result" in dispatcher.handle(envelope)

    def test_xy_scenario(self, dispatcher: Dispatcher, call_tool: MakeRequest) -> None:
        for tags in (["x"], ["y"], ["x", "y"]):
            dispatcher.handle(call_tool("create_capsule", {"content": "c", "tags": tags}))

        any_text = text_of(dispatcher.handle(call_tool("search_capsules_by_tags", {"tags": ["x"]})))
        all_text = text_of(
            dispatcher.handle(
                call_tool("get_capsules_by_tag", {"tags": ["x", "y"], "match_all": True})
            )
        )
        assert "(2 capsules found)" in any_text
        assert "(1 found)" in all_text

    def test_unknown_tool(self, dispatcher: Dispatcher, call_tool: MakeRequest) -> None:
        response = dispatcher.handle(call_tool("does_not_exist", {}))
        assert response["error"] == {"code": -32601, "message": "Unknown tool: does_not_exist"}
        assert response["id"] == 1

    def test_validation_error_is_internal_error(
        self, dispatcher: Dispatcher, call_tool: MakeRequest
    ) -> None:
        response = dispatcher.handle(call_tool("search_capsules_by_content", {"query": "  "}))
        assert response["error"]["code"] == -32603
        assert response["error"]["message"] == (
            "Error executing search_capsules_by_content: "
            "Invalid arguments: 'query' cannot be empty"
        )

    def test_store_error_is_internal_error(
        self, registry: ToolRegistry, failing_store, call_tool: MakeRequest
    ) -> None:
        failing_store.message = "database is locked"
        dispatcher = Dispatcher(
            registry=registry, context_factory=lambda: ToolContext(store=failing_store)
        )
        response = dispatcher.handle(call_tool("get_capsule_stats", {}, request_id="abc"))
        assert response["id"] == "abc"
        assert response["error"]["code"] == -32603
        assert response["error"]["message"].startswith("Error executing get_capsule_stats: ")
        assert "database is locked" in response["error"]["message"]
        assert "result" not in response

    def test_unexpected_exception_is_internal_error(
        self,
        registry: ToolRegistry,
        call_tool: MakeRequest,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        def broken_context() -> ToolContext:
            raise RuntimeError("boom")

        dispatcher = Dispatcher(registry=registry, context_factory=broken_context)
        with caplog.at_level(logging.ERROR, logger="cosmo"):
            response = dispatcher.handle(call_tool("get_tag_cloud"))
        assert response["error"] == {
            "code": -32603,
            "message": "Error executing get_tag_cloud: boom",
        }
        assert "Unexpected error in tool get_tag_cloud" in caplog.text

    @pytest.mark.parametrize(
        "params",
        [
            None,
            {},
            {"name": 5},
            {"name": ""},
            {"name": "get_tag_cloud", "arguments": [1, 2]},
        ],
    )
    def test_invalid_params(
        self, dispatcher: Dispatcher, rpc: MakeRequest, params: dict | None
    ) -> None:
        envelope = rpc("tools/call", params)
        response = dispatcher.handle(envelope)
        assert response["error"]["code"] == -32602
        assert response["error"]["message"].startswith("Invalid params")

    def test_params_not_an_object(self, dispatcher: Dispatcher) -> None:
        envelope = {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": ["x"]}
        assert dispatcher.handle(envelope)["error"]["code"] == -32602


# =============================================================================
# Protocol Errors
# =============================================================================


class TestProtocolErrors:
    """Tests for malformed envelopes."""

    @pytest.mark.parametrize("raw", ["{not json", "", "[1, 2", b"\xff\xfe"])
    def test_parse_error(self, dispatcher: Dispatcher, raw: str | bytes) -> None:
        assert dispatcher.handle_raw(raw) == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "Parse error"},
        }

    def test_nesting_too_deep_to_decode(self, dispatcher: Dispatcher) -> None:
        raw = "[" * 200_000 + "]" * 200_000
        response = dispatcher.handle_raw(raw)
        assert response["id"] is None
        assert response["error"]["code"] == -32700

    def test_invalid_utf8_bytes(self, dispatcher: Dispatcher) -> None:
        raw = b'{"jsonrpc": "2.0", "id": 1, "method": "\xff"}'
        assert dispatcher.handle_raw(raw)["error"]["code"] == -32700

    def test_utf8_bytes_decoded(self, dispatcher: Dispatcher, rpc: MakeRequest) -> None:
        raw = json.dumps(rpc("tools/list", request_id="é"), ensure_ascii=False).encode("utf-8")
        assert dispatcher.handle_raw(raw)["id"] == "é"

    def test_id_too_deep_to_copy(self, dispatcher: Dispatcher) -> None:
        """An id that decodes but can't be copied is an invalid request."""
        request_id: list = []
        for _ in range(100_000):
            request_id = [request_id]
        response = dispatcher.handle({"jsonrpc": "2.0", "id": request_id, "method": "tools/list"})
        assert response == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32600, "message": "Invalid Request"},
        }

    def test_wrong_version(self, dispatcher: Dispatcher) -> None:
        response = dispatcher.handle({"jsonrpc": "1.0", "id": 7, "method": "tools/list"})
        assert response == {
            "jsonrpc": "2.0",
            "id": 7,
            "error": {"code": -32600, "message": "Invalid Request"},
        }

    def test_missing_version_without_id(self, dispatcher: Dispatcher) -> None:
        response = dispatcher.handle({"method": "tools/list"})
        assert response["id"] is None
        assert response["error"]["code"] == -32600

    @pytest.mark.parametrize("message", [[], "tools/list", 42, None])
    def test_non_object_envelope(self, dispatcher: Dispatcher, message: object) -> None:
        response = dispatcher.handle(message)
        assert response["id"] is None
        assert response["error"]["code"] == -32600

    def test_method_not_string(self, dispatcher: Dispatcher) -> None:
        response = dispatcher.handle({"jsonrpc": "2.0", "id": 1, "method": 5})
        assert response["error"]["code"] == -32600

    def test_unknown_method(self, dispatcher: Dispatcher, rpc: MakeRequest) -> None:
        response = dispatcher.handle(rpc("resources/list"))
        assert response["error"] == {"code": -32601, "message": "Method not found: resources/list"}


# =============================================================================
# Envelope Handling
# =============================================================================


class TestEnvelope:
    """Tests for ids and notifications."""

    @pytest.mark.parametrize("request_id", [0, "req-1", None, {"nested": [1, 2]}, 1.5])
    def test_id_echoed(
        self, dispatcher: Dispatcher, rpc: MakeRequest, request_id: object
    ) -> None:
        response = dispatcher.handle(rpc("tools/list", request_id=request_id))
        assert response["id"] == request_id

    def test_id_echoed_by_value(self, dispatcher: Dispatcher, rpc: MakeRequest) -> None:
        request_id = {"nested": [1, 2]}
        response = dispatcher.handle(rpc("initialize", request_id=request_id))
        request_id["nested"].append(3)
        assert response["id"] == {"nested": [1, 2]}

    def test_notification_gets_no_response(self, dispatcher: Dispatcher) -> None:
        assert dispatcher.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None

    def test_notification_method_with_id_is_answered(
        self, dispatcher: Dispatcher, rpc: MakeRequest
    ) -> None:
        response = dispatcher.handle(rpc("notifications/initialized", request_id=3))
        assert response["error"]["code"] == -32601

    def test_handle_raw_round_trip(self, dispatcher: Dispatcher, rpc: MakeRequest) -> None:
        raw = json.dumps(rpc("tools/list", request_id="r"))
        response = dispatcher.handle_raw(raw)
        assert response["id"] == "r"
        assert len(response["result"]["tools"]) == 8

    def test_metadata(self, dispatcher: Dispatcher, registry: ToolRegistry) -> None:
        metadata = dispatcher.metadata()
        assert metadata["name"] == "cosmo"
        assert metadata["protocolVersion"] == PROTOCOL_VERSION
        assert metadata["tools"] == registry.descriptors()


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrentCalls:
    """Tests for tools/call requests handled from several threads."""

    def test_interleaved_creates_and_searches(
        self, dispatcher: Dispatcher, call_tool: MakeRequest
    ) -> None:
        threads, rounds = 8, 50

        def work(worker: int) -> list[dict]:
            tag = f"w{worker}"
            responses = []
            for i in range(rounds):
                create = call_tool("create_capsule", {"content": f"{tag} {i}", "tags": [tag]}, i)
                search = call_tool("search_capsules_by_tags", {"tags": [tag]}, i)
                responses.append(dispatcher.handle_raw(json.dumps(create)))
                responses.append(dispatcher.handle_raw(json.dumps(search)))
            return responses

        with ThreadPoolExecutor(max_workers=threads) as pool:
            results = list(pool.map(work, range(threads)))

        for responses in results:
            assert all("result" in r for r in responses), [r for r in responses if "error" in r]

        stats = text_of(dispatcher.handle(call_tool("get_capsule_stats")))
        assert f"**Total Capsules:** {threads * rounds}" in stats
