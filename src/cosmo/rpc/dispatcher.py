"""
JSON-RPC dispatcher for Cosmo.

The dispatcher is the single request state machine shared by every
transport. It takes one decoded envelope (or raw text, see handle_raw)
and returns the response envelope, or None for notifications.

Routing:
    initialize  -> server info and capabilities
    tools/list  -> registry descriptors, in registration order
    tools/call  -> registry lookup, then Tool.run()

Failures never escape: protocol problems become -32700/-32600/-32601/-32602
responses, and anything a tool raises becomes -32603
"Error executing <name>: <message>".
"""

import copy
import json
import logging
from collections.abc import Callable
from typing import Any

from cosmo.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    CosmoError,
    JsonRpcError,
)
from cosmo.schema import Settings
from cosmo.store import get_store
from cosmo.tools import ToolContext, ToolRegistry, default_registry

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
SERVER_DESCRIPTION = "MCP server for Cosmo knowledge capsules"
NOTIFICATION_PREFIX = "notifications/"


def success_response(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


class Dispatcher:
    """
    Route JSON-RPC envelopes to the protocol methods and tools.

    The dispatcher holds no per-call state. The tool context is built
    lazily on the first tools/call, so initialize and tools/list never
    open the store.

    Example:
        dispatcher = Dispatcher()
        response = dispatcher.handle_raw('{"jsonrpc":"2.0","id":1,"method":"tools/list"}')
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        settings: Settings | None = None,
        context_factory: Callable[[], ToolContext] | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            registry: Tools to expose (default: the built-in registry)
            settings: Server name/version and database path
            context_factory: Builds the ToolContext for tools/call. Defaults
                to the process-wide store opened at settings.db_path.
        """
        self.registry = registry if registry is not None else default_registry
        self.settings = settings or Settings()
        self._context_factory = context_factory or self._default_context

        self._methods: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "initialize": self._initialize,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def _default_context(self) -> ToolContext:
        return ToolContext(store=get_store(self.settings.db_path))

    # =========================================================================
    # Entry points
    # =========================================================================

    def handle_raw(self, raw: str | bytes) -> dict[str, Any] | None:
        """
        Decode and handle one raw envelope.

        Undecodable input (bad JSON, bytes that aren't UTF-8, nesting too
        deep to decode) yields a -32700 response with a null id.
        """
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            message = json.loads(raw)
        except (ValueError, RecursionError) as e:
            logger.warning("Parse error: %s", e)
            return error_response(None, PARSE_ERROR, "Parse error")
        return self.handle(message)

    def handle(self, message: Any) -> dict[str, Any] | None:
        """
        Handle one decoded envelope.

        Returns:
            The response envelope, or None when the message is a notification
        """
        if not isinstance(message, dict):
            return error_response(None, INVALID_REQUEST, "Invalid Request")

        try:
            request_id = copy.deepcopy(message.get("id"))
        except RecursionError:
            return error_response(None, INVALID_REQUEST, "Invalid Request")
        method = message.get("method")

        if message.get("jsonrpc") != JSONRPC_VERSION or not isinstance(method, str):
            return error_response(request_id, INVALID_REQUEST, "Invalid Request")

        if "id" not in message and method.startswith(NOTIFICATION_PREFIX):
            logger.debug("Notification: %s", method)
            return None

        logger.debug("Request %r: %s", request_id, method)

        handler = self._methods.get(method)
        if handler is None:
            return error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        params = message.get("params")
        if params is None:
            params = {}

        try:
            if not isinstance(params, dict):
                raise JsonRpcError(
                    message="Invalid params: params must be an object",
                    code=INVALID_PARAMS,
                )
            result = handler(params)
        except JsonRpcError as e:
            return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": e.to_error_object()}

        return success_response(request_id, result)

    # =========================================================================
    # Methods
    # =========================================================================

    def server_info(self) -> dict[str, str]:
        return {"name": self.settings.server_name, "version": self.settings.server_version}

    def metadata(self) -> dict[str, Any]:
        """Server metadata and tool list, served on plain HTTP GET."""
        return {
            **self.server_info(),
            "description": SERVER_DESCRIPTION,
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "tools": self.registry.descriptors(),
        }

    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": self.server_info(),
        }

    def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": self.registry.descriptors()}

    def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise JsonRpcError(
                message="Invalid params: 'name' is required and must be a string",
                code=INVALID_PARAMS,
            )

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise JsonRpcError(
                message="Invalid params: 'arguments' must be an object",
                code=INVALID_PARAMS,
            )

        tool = self.registry.get_optional(name)
        if tool is None:
            raise JsonRpcError(message=f"Unknown tool: {name}", code=METHOD_NOT_FOUND)

        try:
            output = tool.run(arguments, self._context_factory())
        except CosmoError as e:
            logger.warning("Tool %s failed: %s", name, e.message)
            raise JsonRpcError(
                message=f"Error executing {name}: {e.message}",
                code=INTERNAL_ERROR,
            ) from e
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            raise JsonRpcError(
                message=f"Error executing {name}: {e}",
                code=INTERNAL_ERROR,
            ) from e

        logger.debug("Tool %s succeeded", name)
        return output.to_content()
