"""Shared helpers for message handlers"""

import logging
import re
from datetime import datetime

logger = logging.getLogger("ssam-replicate")

LOG_EVENT = "log"
WARN_EVENT = "warning"

COLORS = {
    "reset": "\x1b[0m",
    "green": "\x1b[32m",
    "yellow": "\x1b[33m",
    "gray": "\x1b[90m",
}

# CSI and OSC escape sequences
ANSI_PATTERN = re.compile(
    r"[\u001B\u009B][\[\]()#;?]*"
    r"(?:(?:(?:(?:;[-a-zA-Z\d/#&.:=?%@~_]+)*|[a-zA-Z\d]+(?:;[-a-zA-Z\d/#&.:=?%@~_]*)*)?\u0007)"
    r"|(?:(?:\d{1,4}(?:;\d{0,4})*)?[\dA-PR-TZcf-nq-uy=><~]))"
)


def color(text: str, name: str) -> str:
    """Wrap text in one of the COLORS codes"""
    return f"{COLORS[name]}{text}{COLORS['reset']}"


def prefix() -> str:
    """Console prefix: gray local time and the green plugin tag"""
    return f"{color(datetime.now().strftime('%H:%M:%S'), 'gray')} {color('[ssam-replicate]', 'green')}"


def remove_ansi(text: str) -> str:
    return ANSI_PATTERN.sub("", text)


async def ssam_log(msg: str, client, client_log: bool = True):
    """Log on the server and, when enabled, mirror the message to the browser"""
    logger.info(msg)
    if client_log:
        await client.send(LOG_EVENT, {"msg": remove_ansi(msg)})


async def ssam_warn(msg: str, client, client_log: bool = True):
    logger.error(msg)
    if client_log:
        await client.send(WARN_EVENT, {"msg": remove_ansi(msg)})
