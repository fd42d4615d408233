"""
Tool registry for Cosmo.

The registry is the single source of truth for the tools advertised to MCP
clients. It keeps registration order, so tools/list is stable.

Design:
    - Single global registry (default_registry) for convenience
    - Support for multiple registries for testing/isolation
    - Clear error messages for unknown tools

Usage:
    from cosmo.tools.registry import default_registry

    # Register a tool
    default_registry.register(MyTool())

    # Look up a tool
    tool = default_registry.get("my_tool")
"""

from typing import Any, Iterator

from cosmo.errors import ToolNotFoundError
from cosmo.tools.base import Tool, ToolContext, ToolOutput


class ToolRegistry:
    """
    Registry for looking up tools by name.

    Attributes:
        _tools: Mapping of tool names to tool instances, in registration order
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool in the registry.

        Re-registering a name replaces the earlier tool in place.

        Raises:
            ValueError: If tool is None or has an empty name
        """
        if tool is None:
            msg = "Cannot register None as a tool"
            raise ValueError(msg)

        name = tool.name
        if not name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)

        self._tools[name] = tool

    def get(self, name: str) -> Tool:
        """
        Look up a tool by name.

        Raises:
            ToolNotFoundError: If no tool with that name is registered
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(tool=name)
        return tool

    def get_optional(self, name: str) -> Tool | None:
        """Look up a tool by name, returning None if not found."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List registered tool names in registration order."""
        return list(self._tools)

    def descriptors(self) -> list[dict[str, Any]]:
        """The tools/list payload: name, description and inputSchema per tool."""
        return [tool.descriptor() for tool in self._tools.values()]

    def call(
        self,
        name: str,
        args: dict[str, Any] | None,
        context: ToolContext,
    ) -> ToolOutput:
        """
        Run a tool by name.

        Raises:
            ToolNotFoundError: If no tool with that name is registered
            ToolInvalidArgsError: If the arguments fail validation
            StorageError: If the store fails while the tool runs
        """
        return self.get(name).run(args, context)

    def __iter__(self) -> Iterator[Tool]:
        """Iterate over all registered tools."""
        return iter(self._tools.values())

    def __repr__(self) -> str:
        """String representation of the registry."""
        tools = ", ".join(self.list_tools())
        return f"<ToolRegistry: [{tools}]>"


# Global default registry instance
# This is the registry used by the dispatcher unless overridden
default_registry = ToolRegistry()

