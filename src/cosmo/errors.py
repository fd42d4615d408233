"""
Exception hierarchy for Cosmo.

All Cosmo exceptions inherit from CosmoError, allowing callers to catch
all Cosmo-specific exceptions with a single except clause.

Exception Categories:
    - ToolError: Tool lookup or argument problems
    - StorageError: Database operation failed
    - ConfigError: Settings file could not be loaded
    - JsonRpcError: Protocol-level failure inside the dispatcher

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (tool, args, operation where applicable)
    - Errors are both human-readable and machine-parseable
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Tool errors: 2xxx
ERROR_TOOL_NOT_FOUND = 2001
ERROR_TOOL_INVALID_ARGS = 2002

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003
ERROR_CAPSULE_NOT_FOUND = 5005

# Config errors: 6xxx
ERROR_CONFIG_INVALID = 6001

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class CosmoError(Exception):
    """
    Base exception for all Cosmo errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Tool Errors
# =============================================================================


@dataclass
class ToolError(CosmoError):
    """
    Base class for tool errors.

    Attributes:
        tool: Name of the tool involved
        tool_args: Arguments that were provided
    """

    tool: str = ""
    tool_args: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "tool": self.tool,
            "tool_args": self.tool_args,
        })


@dataclass
class ToolNotFoundError(ToolError):
    """Raised when a tool is not registered."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unknown tool: {self.tool}"
        if self.code == 0:
            self.code = ERROR_TOOL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Call tools/list to see the available tools"
        super().__post_init__()


@dataclass
class ToolInvalidArgsError(ToolError):
    """
    Raised when tool arguments fail validation.

    Raised before the store is touched.
    """

    errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid arguments: {'; '.join(self.errors)}"
        if self.code == 0:
            self.code = ERROR_TOOL_INVALID_ARGS
        super().__post_init__()
        self.context["errors"] = list(self.errors)


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(CosmoError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "insert", "count")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class CapsuleNotFoundError(StorageError):
    """Raised when an update targets a capsule that doesn't exist."""

    capsule_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Capsule not found: {self.capsule_id}"
        if self.code == 0:
            self.code = ERROR_CAPSULE_NOT_FOUND
        super().__post_init__()
        self.context["capsule_id"] = self.capsule_id


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(CosmoError):
    """Raised when a settings file cannot be read or validated."""

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid settings file: {self.path}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["path"] = self.path


# =============================================================================
# Protocol Errors
# =============================================================================


@dataclass
class JsonRpcError(CosmoError):
    """
    A JSON-RPC protocol error.

    The code is the JSON-RPC error code (e.g. -32601), so the dispatcher can
    copy code and message straight into the response's error object.
    """

    def to_error_object(self) -> dict[str, Any]:
        """Return the JSON-RPC ``error`` member for this failure."""
        return {"code": self.code, "message": self.message}
