"""
Markdown rendering for tool results.

MCP clients show the text block of a tools/call result to the user (and
the model), so every rendering keeps the informational content: a headline
with counts, one block per capsule (id, content, tags, date) separated by
a horizontal rule, pagination position where relevant, and a fallback line
when nothing matched.

Dates are rendered in UTC so the output does not depend on the host's
locale or timezone.
"""

import math
from collections.abc import Sequence
from datetime import UTC, datetime

from cosmo.schema import Capsule, CapsuleSearchResult, CapsuleStats

SEPARATOR = "\n\n---\n\n"


def to_datetime(timestamp_ms: int) -> datetime:
    """Convert a millisecond timestamp into an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


def format_date(timestamp_ms: int) -> str:
    return to_datetime(timestamp_ms).strftime("%Y-%m-%d")


def format_datetime(timestamp_ms: int) -> str:
    return to_datetime(timestamp_ms).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_tags(tags: Sequence[str], sep: str = " ") -> str:
    """Render tags as hashtags, or "No tags"."""
    if not tags:
        return "No tags"
    return sep.join(f"#{tag}" for tag in tags)


def total_pages(total_count: int, page_size: int) -> int:
    """Number of pages needed for total_count items (at least 1)."""
    return max(1, math.ceil(total_count / page_size))


def render_capsule(capsule: Capsule) -> str:
    """One capsule block as used by the search results."""
    return (
        f"🌟 **CAPSULE** ({format_datetime(capsule.timestamp)})\n"
        f"📝 {capsule.content}\n"
        f"🏷️ {format_tags(capsule.tags)}\n"
        f"🆔 {capsule.id}"
    )


def _join_blocks(blocks: list[str], empty_text: str) -> str:
    return SEPARATOR.join(blocks) if blocks else empty_text


def render_search(
    title: str,
    result: CapsuleSearchResult,
    page: int,
    page_size: int,
) -> str:
    """Render one page of a paginated search."""
    blocks = [render_capsule(c) for c in result.capsules]
    body = _join_blocks(blocks, "No capsules found matching your criteria.")
    return (
        f"🔍 **{title}** ({result.total_count} capsules found)\n\n"
        f"{body}\n\n"
        f"📄 Page {page} of {total_pages(result.total_count, page_size)} "
        f"(showing {len(result.capsules)}, page size {page_size})"
    )


def render_search_results(capsules: Sequence[Capsule], limit: int) -> str:
    """Render a limited combined search, warning when the limit was hit."""
    blocks = [render_capsule(c) for c in capsules]
    body = _join_blocks(blocks, "No capsules found matching your criteria.")
    text = f"🔍 **Search Results** ({len(capsules)} capsules found)\n\n{body}"
    if len(capsules) == limit:
        text += f"\n\n⚠️ Results limited to {limit}. Use a higher limit to see more."
    return text


def render_recent(result: CapsuleSearchResult, days: float | None) -> str:
    """Render the most recent capsules, optionally within a day window."""
    timeframe = f"from the last {days:g} days" if days is not None else "overall"
    blocks = [
        f"📝 **{c.content}**\n"
        f"🏷️ {format_tags(c.tags)}\n"
        f"📅 {format_datetime(c.timestamp)}\n"
        f"🆔 {c.id}"
        for c in result.capsules
    ]
    body = _join_blocks(blocks, "No recent capsules found.")
    return f"⏰ **Your {result.total_count} most recent capsules {timeframe}:**\n\n{body}"


def render_created(capsule: Capsule) -> str:
    """Render the confirmation for a newly created capsule."""
    return (
        "✨ **New Capsule Created Successfully!**\n\n"
        f"📝 **Content:** {capsule.content}\n"
        f"🏷️ **Tags:** {format_tags(capsule.tags, sep=', ')}\n"
        f"🆔 **ID:** {capsule.id}\n"
        f"📅 **Created:** {format_datetime(capsule.timestamp)}\n\n"
        "🌟 Your inspiration has been captured! 🚀"
    )


def render_stats(stats: CapsuleStats, details: dict[str, str] | None = None) -> str:
    """Render collection statistics, with optional detailed analytics lines."""
    if stats.top_tags:
        top = "\n".join(f"   #{tag} ({count} capsules)" for tag, count in stats.top_tags)
    else:
        top = "   No tags yet"

    text = (
        "📊 **Knowledge Base Statistics**\n\n"
        f"🌟 **Total Capsules:** {stats.total_capsules}\n"
        f"🏷️ **Unique Tags:** {stats.unique_tags}\n"
        f"📅 **Recent (7 days):** {stats.recent_capsules}\n"
        f"📆 **This Month:** {stats.this_month_capsules}\n\n"
        f"🔥 **Top Tags:**\n{top}"
    )

    if details:
        lines = "\n".join(f"{label}: {value}" for label, value in details.items())
        text += f"\n\n📈 **Detailed Analytics:**\n{lines}"

    return text


def render_tag_matches(
    capsules: Sequence[Capsule],
    tags: Sequence[str],
    match_all: bool,
) -> str:
    """Render capsules matched by an ANY/ALL tag query."""
    match_type = "ALL" if match_all else "ANY"
    blocks = [
        f"🌟 **{c.content}**\n"
        f"🏷️ {format_tags(c.tags)}\n"
        f"📅 {format_date(c.timestamp)}\n"
        f"🆔 {c.id}"
        for c in capsules
    ]
    body = _join_blocks(blocks, "No capsules found with the specified tags.")
    return (
        f"🏷️ **Capsules with {match_type} tags: {format_tags(tags, sep=', ')}** "
        f"({len(capsules)} found)\n\n{body}"
    )


def tag_size_icon(count: int) -> str:
    if count > 10:
        return "🔥"
    if count > 5:
        return "⭐"
    if count > 2:
        return "✨"
    return "💫"


def render_tag_cloud(entries: Sequence[tuple[str, int]], min_count: int) -> str:
    """Render tag usage counts with size icons."""
    if entries:
        body = "\n".join(f"{tag_size_icon(count)} #{tag} ({count})" for tag, count in entries)
    else:
        body = "No tags found."
    return (
        f"🏷️ **Tag Cloud** ({len(entries)} tags with {min_count}+ uses)\n\n"
        f"{body}\n\n"
        "💡 **Legend:** 🔥 11+ uses | ⭐ 6-10 uses | ✨ 3-5 uses | 💫 1-2 uses"
    )
