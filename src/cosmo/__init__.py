"""
Cosmo - Knowledge capsules for AI agents.

Cosmo stores capsules (timestamped text notes with free-form tags) and
exposes them to MCP clients through a JSON-RPC 2.0 tool endpoint.
It provides:
- Tag, content and recency search over capsules
- Capsule creation and collection statistics
- A transport-agnostic JSON-RPC dispatcher (stdio and HTTP bindings)
- Local SQLite persistence

Example usage:
    $ cosmo serve --transport stdio
    $ cosmo add "Read the SICP chapter on streams" --tag reading
    $ cosmo call search_capsules_by_tags --args '{"tags": ["reading"]}'
"""

__version__ = "0.1.0"
__author__ = "Cosmo Contributors"

__all__ = [
    "__version__",
    "__author__",
]
