"""
Tools module for Cosmo.

This module provides the tool interface and the capsule tools advertised
to MCP clients through tools/list.

Built-in tools:
    - search_capsules_by_tags: Paginated tag search (OR semantics)
    - search_capsules_by_content: Paginated content search
    - get_recent_capsules: Most recent capsules, optional day window
    - create_capsule: Capture a new capsule
    - get_capsule_stats: Collection statistics
    - get_capsules_by_tag: ANY/ALL tag match
    - get_tag_cloud: Tag usage counts
    - search_capsules: Combined content, tag and day filters

Architecture:
    - Tool: Abstract base class defining the tool interface
    - ToolRegistry: Ordered registry for looking up tools by name
    - ToolContext: Runtime context passed to tools (store, clock)
    - ToolOutput: Rendered text plus raw data

Each tool is responsible for:
    1. Declaring its arguments (and their defaults) in input_schema
    2. Querying the store
    3. Returning a ToolOutput
"""

from cosmo.tools.base import Tool, ToolContext, ToolOutput
from cosmo.tools.capsules import capsule_tools, register_capsule_tools
from cosmo.tools.registry import ToolRegistry, default_registry

# Register built-in tools
register_capsule_tools()

__all__ = [
    "Tool",
    "ToolContext",
    "ToolOutput",
    "ToolRegistry",
    "capsule_tools",
    "default_registry",
    "register_capsule_tools",
]
