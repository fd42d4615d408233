"""
Capsule tools for Cosmo.

This module provides the tools advertised to MCP clients:
- search_capsules_by_tags: Paginated tag search (any tag matches)
- search_capsules_by_content: Paginated case-insensitive content search
- get_recent_capsules: Most recent capsules, optionally within N days
- create_capsule: Capture a new capsule
- get_capsule_stats: Collection statistics and top tags
- get_capsules_by_tag: ANY/ALL tag match with a result limit
- get_tag_cloud: Every tag with its usage count
- search_capsules: Content, tag and day filters combined in one query

Paginated searches count the full match set and fetch the page in two
separate store calls. A write landing between them can make totalCount
disagree with the page by a capsule or so; no lock is taken.

Tag counts (stats, tag cloud) count each distinct tag once per capsule,
in first-encountered order over the most-recent-first collection.
"""

from collections import Counter
from collections.abc import Iterable
from typing import Any

from cosmo.schema import Capsule, CapsuleSearchResult, CapsuleStats, NewCapsule
from cosmo.store.base import CapsuleFilter
from cosmo.tools.base import MS_PER_DAY, Tool, ToolContext, ToolOutput
from cosmo.tools.registry import ToolRegistry, default_registry
from cosmo.tools.render import (
    format_date,
    render_created,
    render_recent,
    render_search,
    render_search_results,
    render_stats,
    render_tag_cloud,
    render_tag_matches,
)

TOP_TAGS_LIMIT = 5
RECENT_WINDOW_DAYS = 7
MONTH_WINDOW_DAYS = 30

TAGS_PROPERTY: dict[str, Any] = {
    "type": "array",
    "items": {"type": "string"},
    "minItems": 1,
    "description": "Tags to search for",
}

PAGINATION_PROPERTIES: dict[str, Any] = {
    "page": {
        "type": "number",
        "description": "Page number, starting at 1",
        "default": 1,
        "minimum": 1,
        "multipleOf": 1,
    },
    "pageSize": {
        "type": "number",
        "description": "Capsules per page",
        "default": 10,
        "minimum": 1,
        "multipleOf": 1,
    },
}


def count_tags(capsules: Iterable[Capsule]) -> Counter[str]:
    """Count, per tag, how many capsules carry it."""
    counts: Counter[str] = Counter()
    for capsule in capsules:
        counts.update(dict.fromkeys(capsule.tags))
    return counts


def compute_stats(capsules: list[Capsule], now: int) -> CapsuleStats:
    """
    Aggregate statistics as of ``now`` (milliseconds since epoch).

    Args:
        capsules: The whole collection, most recent first
        now: Reference time for the 7 and 30 day windows
    """
    counts = count_tags(capsules)
    recent_cutoff = now - RECENT_WINDOW_DAYS * MS_PER_DAY
    month_cutoff = now - MONTH_WINDOW_DAYS * MS_PER_DAY

    return CapsuleStats(
        total_capsules=len(capsules),
        unique_tags=len(counts),
        recent_capsules=sum(1 for c in capsules if c.timestamp > recent_cutoff),
        this_month_capsules=sum(1 for c in capsules if c.timestamp > month_cutoff),
        top_tags=counts.most_common(TOP_TAGS_LIMIT),
    )


def _paginate(
    context: ToolContext,
    filter: CapsuleFilter,
    page: int,
    page_size: int,
) -> CapsuleSearchResult:
    total = context.store.count(filter)
    capsules = context.store.select_all(
        filter,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return CapsuleSearchResult(capsules=capsules, total_count=total)


class SearchCapsulesByTagsTool(Tool):
    """
    Search capsules sharing at least one tag with the query.

    Arguments:
        tags (list[str]): Tags to match (required, non-empty)
        page (int): Page number, default 1
        pageSize (int): Capsules per page, default 10
    """

    @property
    def name(self) -> str:
        return "search_capsules_by_tags"

    @property
    def description(self) -> str:
        return (
            "Search knowledge capsules by tags. A capsule matches if it has any "
            "of the given tags. Use when the user wants everything filed under "
            "one or more topics."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"tags": TAGS_PROPERTY, **PAGINATION_PROPERTIES},
            "required": ["tags"],
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        page = int(args["page"])
        page_size = int(args["pageSize"])
        result = _paginate(context, CapsuleFilter(tags_overlap=args["tags"]), page, page_size)
        text = render_search("Tag Search Results", result, page, page_size)
        return ToolOutput.ok(text, result, page=page, page_size=page_size)


class SearchCapsulesByContentTool(Tool):
    """
    Search capsule content for a case-insensitive substring.

    Arguments:
        query (str): Text to look for (required, non-blank)
        page (int): Page number, default 1
        pageSize (int): Capsules per page, default 10
    """

    @property
    def name(self) -> str:
        return "search_capsules_by_content"

    @property
    def description(self) -> str:
        return (
            "Search knowledge capsules by keyword. Matches a case-insensitive "
            "substring of the capsule content (tags are not searched)."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Keyword or phrase to search for"},
                **PAGINATION_PROPERTIES,
            },
            "required": ["query"],
        }

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors = super().validate_args(args)
        query = args.get("query")
        if isinstance(query, str) and not query.strip():
            errors.append("'query' cannot be empty")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        page = int(args["page"])
        page_size = int(args["pageSize"])
        filter = CapsuleFilter(content_contains=args["query"])
        result = _paginate(context, filter, page, page_size)
        text = render_search("Content Search Results", result, page, page_size)
        return ToolOutput.ok(text, result, page=page, page_size=page_size)


class GetRecentCapsulesTool(Tool):
    """
    Get the most recent capsules.

    Arguments:
        limit (int): Maximum capsules to return, default 5
        days (float): Only capsules from the last N days (optional, 0 for
            no window)

    totalCount is the number of capsules returned, not a count of every
    capsule in the window.
    """

    @property
    def name(self) -> str:
        return "get_recent_capsules"

    @property
    def description(self) -> str:
        return "Get the most recent knowledge capsules, optionally limited to the last N days."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "number",
                    "description": "Number of capsules to return",
                    "default": 5,
                    "minimum": 1,
                    "multipleOf": 1,
                },
                "days": {
                    "type": "number",
                    "description": "Only return capsules from the last N days",
                    "minimum": 0,
                },
            },
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        limit = int(args["limit"])
        # 0 means no window, same as leaving days out
        days = args.get("days") or None

        filter = None
        if days is not None:
            filter = CapsuleFilter(timestamp_gte=int(context.clock() - days * MS_PER_DAY))

        capsules = context.store.select_all(filter, limit=limit)
        result = CapsuleSearchResult(capsules=capsules, total_count=len(capsules))
        return ToolOutput.ok(render_recent(result, days), result, limit=limit, days=days)


class CreateCapsuleTool(Tool):
    """
    Capture a new capsule.

    Arguments:
        content (str): Capsule text (required, non-blank; stored trimmed)
        tags (list[str]): Tags, default []. Anything that isn't a list is
            treated as no tags rather than rejected.
    """

    @property
    def name(self) -> str:
        return "create_capsule"

    @property
    def description(self) -> str:
        return "Create a new knowledge capsule with optional tags."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "The content of the capsule"},
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Tags to associate with the capsule",
                    "default": [],
                },
            },
            "required": ["content"],
        }

    def resolve_args(self, args: dict[str, Any]) -> dict[str, Any]:
        resolved = super().resolve_args(args)
        if not isinstance(resolved.get("tags"), list):
            resolved["tags"] = []
        return resolved

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        errors = super().validate_args(args)
        content = args.get("content")
        if isinstance(content, str) and not content.strip():
            errors.append("'content' cannot be empty")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        new = NewCapsule(
            content=args["content"].strip(),
            tags=list(args["tags"]),
            timestamp=context.clock(),
        )
        capsule = context.store.insert(new)
        return ToolOutput.ok(render_created(capsule), capsule)


class GetCapsuleStatsTool(Tool):
    """
    Statistics over the whole collection.

    Arguments:
        detailed (bool): Add first/latest dates and averages, default False
    """

    @property
    def name(self) -> str:
        return "get_capsule_stats"

    @property
    def description(self) -> str:
        return (
            "Get statistics about the knowledge base: totals, unique tags, "
            "activity in the last 7 and 30 days, and the most used tags."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "detailed": {
                    "type": "boolean",
                    "description": "Include first/latest capsule dates and averages",
                    "default": False,
                },
            },
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        capsules = context.store.select_all()
        now = context.clock()
        stats = compute_stats(capsules, now)

        details: dict[str, str] = {}
        if args["detailed"] and capsules:
            first = min(c.timestamp for c in capsules)
            latest = max(c.timestamp for c in capsules)
            days_active = max(1.0, (now - first) / MS_PER_DAY)
            tag_total = sum(count_tags(capsules).values())
            details = {
                "🗓️ **First Capsule**": format_date(first),
                "🗓️ **Latest Capsule**": format_date(latest),
                "📊 **Average per Day**": f"{stats.total_capsules / days_active:.2f} capsules",
                "💭 **Average Tags per Capsule**": f"{tag_total / stats.total_capsules:.1f}",
            }

        return ToolOutput.ok(render_stats(stats, details), stats, details=details)


class GetCapsulesByTagTool(Tool):
    """
    Capsules matching ANY or ALL of the given tags.

    Arguments:
        tags (list[str]): Tags to match (required, non-empty)
        match_all (bool): Require every tag instead of any, default False
        limit (int): Maximum capsules to return, default 20
    """

    @property
    def name(self) -> str:
        return "get_capsules_by_tag"

    @property
    def description(self) -> str:
        return "Retrieve capsules with any (default) or all of the given tags."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "tags": TAGS_PROPERTY,
                "match_all": {
                    "type": "boolean",
                    "description": "Whether to match all tags or any tag",
                    "default": False,
                },
                "limit": {
                    "type": "number",
                    "description": "Maximum results to return",
                    "default": 20,
                    "minimum": 1,
                    "multipleOf": 1,
                },
            },
            "required": ["tags"],
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        tags = args["tags"]
        match_all = args["match_all"]
        if match_all:
            filter = CapsuleFilter(tags_contain=tags)
        else:
            filter = CapsuleFilter(tags_overlap=tags)

        capsules = context.store.select_all(filter, limit=int(args["limit"]))
        result = CapsuleSearchResult(capsules=capsules, total_count=len(capsules))
        return ToolOutput.ok(render_tag_matches(capsules, tags, match_all), result)


class GetTagCloudTool(Tool):
    """
    Every tag with the number of capsules carrying it.

    Arguments:
        min_count (int): Leave out tags used fewer times, default 1
    """

    @property
    def name(self) -> str:
        return "get_tag_cloud"

    @property
    def description(self) -> str:
        return "Get all unique tags with their usage counts, most used first."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "min_count": {
                    "type": "number",
                    "description": "Minimum usage count to include a tag",
                    "default": 1,
                    "minimum": 1,
                    "multipleOf": 1,
                },
            },
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        min_count = int(args["min_count"])
        counts = count_tags(context.store.select_all())
        entries = [(tag, n) for tag, n in counts.most_common() if n >= min_count]
        return ToolOutput.ok(render_tag_cloud(entries, min_count), entries)


class SearchCapsulesTool(Tool):
    """
    Search with any combination of content, tag and recency filters.

    Every filter given must hold (AND). An empty query, empty tag list or
    days of 0 counts as not given, so a call with no filters returns the
    most recent capsules.

    Arguments:
        query (str): Case-insensitive content substring (optional)
        tags (list[str]): Capsule must share at least one tag (optional)
        days (float): Only capsules from the last N days (optional)
        limit (int): Maximum capsules to return, default 10
    """

    @property
    def name(self) -> str:
        return "search_capsules"

    @property
    def description(self) -> str:
        return "Search through capsules by content, tags, or date range."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query for content"},
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Filter by specific tags",
                },
                "days": {
                    "type": "number",
                    "description": "Only return capsules from the last N days",
                    "minimum": 0,
                },
                "limit": {
                    "type": "number",
                    "description": "Maximum results to return",
                    "default": 10,
                    "minimum": 1,
                    "multipleOf": 1,
                },
            },
        }

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        limit = int(args["limit"])
        days = args.get("days")
        filter = CapsuleFilter(
            content_contains=args.get("query") or None,
            tags_overlap=args.get("tags") or None,
            timestamp_gte=int(context.clock() - days * MS_PER_DAY) if days else None,
        )

        capsules = context.store.select_all(filter, limit=limit)
        result = CapsuleSearchResult(capsules=capsules, total_count=len(capsules))
        return ToolOutput.ok(render_search_results(capsules, limit), result, limit=limit)


def capsule_tools() -> list[Tool]:
    """All capsule tools, in the order tools/list advertises them."""
    return [
        SearchCapsulesByTagsTool(),
        SearchCapsulesByContentTool(),
        GetRecentCapsulesTool(),
        CreateCapsuleTool(),
        GetCapsuleStatsTool(),
        GetCapsulesByTagTool(),
        GetTagCloudTool(),
        SearchCapsulesTool(),
    ]


def register_capsule_tools(registry: ToolRegistry | None = None) -> ToolRegistry:
    """Register the capsule tools (default registry unless one is given)."""
    registry = default_registry if registry is None else registry
    for tool in capsule_tools():
        registry.register(tool)
    return registry
