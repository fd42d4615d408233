"""
JSON-RPC layer for Cosmo.

One Dispatcher implements the MCP request handling; the transports only
move envelopes in and out of it:
    - serve_stdio: one envelope per line over stdin/stdout
    - create_app: FastAPI application for HTTP deployments

The HTTP transport is imported from cosmo.rpc.http directly so the stdio
path does not load FastAPI.
"""

from cosmo.rpc.dispatcher import (
    PROTOCOL_VERSION,
    Dispatcher,
    error_response,
    success_response,
)
from cosmo.rpc.stdio import serve_stdio

__all__ = [
    "PROTOCOL_VERSION",
    "Dispatcher",
    "error_response",
    "serve_stdio",
    "success_response",
]
