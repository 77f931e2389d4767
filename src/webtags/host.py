"""
WebTags native messaging host -- the process the browser launches.

Reads one framed request from stdin, runs it through the session,
writes one framed response to stdout, and repeats until the browser
closes the pipe. Logging goes to a file and stderr, never to stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import BinaryIO, Optional

from .config import HostConfig
from .messaging import MessageError, read_message, write_response
from .session import ErrorResponse, Session

logger = logging.getLogger("webtags.host")


def setup_logging(config: HostConfig) -> None:
    """Configure file and stderr logging for the host process."""
    formatter = logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    root = logging.getLogger()

    try:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as exc:
        print(f"webtags: cannot open log file {config.log_file}: {exc}", file=sys.stderr)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))


def run_host(
    session: Session,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
) -> int:
    """Serve requests until end of input.

    Returns:
        Number of requests handled.
    """
    stdin = stdin or sys.stdin.buffer
    stdout = stdout or sys.stdout.buffer
    handled = 0

    logger.info("WebTags native messaging host started")
    while True:
        try:
            action = read_message(stdin)
        except MessageError as exc:
            logger.error("Failed to read message: %s", exc.message)
            try:
                write_response(
                    stdout,
                    ErrorResponse(
                        message=f"Failed to read message: {exc.message}",
                        code=exc.code,
                    ),
                )
            except OSError as write_exc:
                logger.error("Failed to write error response: %s", write_exc)
            break

        if action is None:
            break

        logger.info("Received %s request", action.type)
        response = session.handle(action)
        handled += 1

        try:
            write_response(stdout, response)
        except OSError as exc:
            logger.error("Failed to write response: %s", exc)
            break

    logger.info("WebTags native messaging host stopped")
    return handled
