"""
Base classes for the tool interface.

This module defines the core abstractions for tools in Cosmo:
- Tool: Abstract base class that all tools must implement
- ToolContext: Runtime context passed to tools during execution
- ToolOutput: Standardized result format from tool execution

Design Principles:
    - Tools are stateless - the store and clock come from ToolContext
    - The input schema is the single source of argument defaults; run()
      applies them before validation, so advertised and applied defaults
      never diverge
    - Invalid arguments raise ToolInvalidArgsError before the store is touched
    - Store failures propagate unchanged; tools never return partial results
"""

import copy
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from cosmo.errors import ToolInvalidArgsError
from cosmo.store.base import CapsuleStore

MS_PER_DAY = 86_400_000


def now_ms() -> int:
    """Current time in milliseconds since epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ToolOutput:
    """
    Standardized output from tool execution.

    Attributes:
        text: Markdown rendering sent to MCP clients
        data: Raw result (models, dicts) for programmatic callers
        metadata: Additional metadata about the execution
    """

    text: str
    data: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, text: str, data: Any = None, **metadata: Any) -> "ToolOutput":
        """Create an output."""
        return cls(text=text, data=data, metadata=metadata)

    def to_content(self) -> dict[str, Any]:
        """The tools/call result: a single text content block."""
        return {"content": [{"type": "text", "text": self.text}]}


@dataclass
class ToolContext:
    """
    Runtime context passed to tools during execution.

    Attributes:
        store: Capsule storage backend
        clock: Returns "now" in milliseconds since epoch
        metadata: Additional context-specific metadata
    """

    store: CapsuleStore
    clock: Callable[[], int] = now_ms
    metadata: dict[str, Any] = field(default_factory=dict)


_JSON_TYPES: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
}


def check_value(key: str, value: Any, prop: dict[str, Any]) -> list[str]:
    """
    Check one argument against its schema property.

    Supports type, items.type, minItems, minimum and multipleOf, which is
    all the capsule tools declare.
    """
    expected = prop.get("type")
    check = _JSON_TYPES.get(expected) if expected else None
    if check is not None and not check(value):
        return [f"'{key}' must be of type {expected}"]

    errors = []
    if expected == "array":
        item_type = prop.get("items", {}).get("type")
        item_check = _JSON_TYPES.get(item_type) if item_type else None
        if item_check is not None and not all(item_check(item) for item in value):
            errors.append(f"'{key}' items must be of type {item_type}")
        if len(value) < prop.get("minItems", 0):
            errors.append(f"'{key}' must contain at least {prop['minItems']} item(s)")

    if expected == "number":
        if "minimum" in prop and value < prop["minimum"]:
            errors.append(f"'{key}' must be >= {prop['minimum']}")
        if prop.get("multipleOf") == 1 and not float(value).is_integer():
            errors.append(f"'{key}' must be a whole number")

    return errors


class Tool(ABC):
    """
    Abstract base class for all Cosmo tools.

    Each tool:
    - Has a unique name (e.g., "create_capsule")
    - Describes its arguments with a JSON-Schema style input_schema
    - Implements execute() against a ToolContext
    - Returns a ToolOutput

    Subclasses must implement:
    - name property: Returns the tool's unique identifier
    - execute(): Performs the tool's action on resolved, validated args

    Example:
        class EchoTool(Tool):
            @property
            def name(self) -> str:
                return "echo"

            @property
            def input_schema(self) -> dict[str, Any]:
                return {
                    "type": "object",
                    "properties": {"message": {"type": "string", "default": ""}},
                }

            def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
                return ToolOutput.ok(args["message"])
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The unique identifier for this tool."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        return f"Tool: {self.name}"

    @property
    def input_schema(self) -> dict[str, Any]:
        """
        Declarative argument shape advertised through tools/list.

        Returns:
            {"type": "object", "properties": {...}, "required": [...]}
        """
        return {"type": "object", "properties": {}}

    def descriptor(self) -> dict[str, Any]:
        """The tools/list entry for this tool."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": copy.deepcopy(self.input_schema),
        }

    def resolve_args(self, args: dict[str, Any]) -> dict[str, Any]:
        """
        Fill in schema defaults for missing or null arguments.

        Override to coerce arguments before validation; call super() first.
        """
        resolved = dict(args)
        for key, prop in self.input_schema.get("properties", {}).items():
            if resolved.get(key) is None:
                if "default" in prop:
                    resolved[key] = copy.deepcopy(prop["default"])
                else:
                    resolved.pop(key, None)
        return resolved

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        """
        Validate resolved arguments against the input schema.

        Override to add tool-specific checks; extend the list from super().

        Returns:
            List of validation error messages (empty if valid)
        """
        schema = self.input_schema
        errors = [
            f"'{key}' is required"
            for key in schema.get("required", [])
            if key not in args
        ]
        for key, prop in schema.get("properties", {}).items():
            if key in args:
                errors.extend(check_value(key, args[key], prop))
        return errors

    @abstractmethod
    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        """
        Execute the tool with resolved, validated arguments.

        Args:
            args: Arguments with schema defaults applied
            context: Runtime context with store and clock

        Returns:
            ToolOutput with rendered text and raw data

        Raises:
            StorageError: If the store fails; never swallowed
        """
        ...

    def run(self, args: dict[str, Any] | None, context: ToolContext) -> ToolOutput:
        """
        Resolve defaults, validate, then execute.

        Raises:
            ToolInvalidArgsError: If validation fails (no store access happens)
        """
        resolved = self.resolve_args(args or {})
        errors = self.validate_args(resolved)
        if errors:
            raise ToolInvalidArgsError(tool=self.name, tool_args=dict(args or {}), errors=errors)
        return self.execute(resolved, context)

    def __repr__(self) -> str:
        """String representation of the tool."""
        return f"<Tool: {self.name}>"
