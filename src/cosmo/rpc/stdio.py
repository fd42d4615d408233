"""
Standard-stream transport.

Reads one JSON-RPC envelope per line from stdin and writes one response
per line to stdout. Blank lines are skipped and notifications get no
output line. Logging must stay on stderr.

Input is read as bytes and decoded per line, so a line that isn't valid
UTF-8 becomes a parse error response instead of ending the loop.
"""

import json
import logging
import sys
from typing import BinaryIO, TextIO

from cosmo.rpc.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


def serve_stdio(
    dispatcher: Dispatcher,
    stdin: BinaryIO | None = None,
    stdout: TextIO | None = None,
) -> int:
    """
    Serve requests until stdin is closed.

    Args:
        dispatcher: Handles each envelope
        stdin: Binary input stream (default: sys.stdin.buffer)
        stdout: Output stream (default: sys.stdout)

    Returns:
        Number of responses written
    """
    stdin = stdin or sys.stdin.buffer
    stdout = stdout or sys.stdout
    written = 0

    logger.info("Serving MCP over stdio")
    for line in stdin:
        line = line.strip()
        if not line:
            continue

        response = dispatcher.handle_raw(line)
        if response is None:
            continue

        stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
        stdout.flush()
        written += 1

    logger.info("stdin closed, %d response(s) written", written)
    return written
