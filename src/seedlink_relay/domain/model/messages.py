"""Outbound message envelopes.

Every frame sent to a client is a single JSON object:
- errors become {"error": <message or traceback>}
- plain text becomes {"success": <text>}
- records from a channel source are sent unmodified
"""

from __future__ import annotations

import json
import traceback
from collections.abc import Mapping
from typing import Any


# Sent to every client right after it connects
WELCOME_MESSAGE = "Connected to Seedlink Proxy."


def render_outbound(value: BaseException | str | Mapping[str, Any], *, debug: bool = False) -> Any:
    """Wrap a value in its outbound envelope.

    Args:
        value: Error, text or passthrough record
        debug: Render errors with their full traceback instead of the message only

    Returns:
        JSON-serializable object
    """
    if isinstance(value, BaseException):
        if debug:
            detail = "".join(traceback.format_exception(value)).rstrip()
        else:
            detail = str(value)
        return {"error": detail}

    if isinstance(value, str):
        return {"success": value}

    return value


def encode_outbound(value: BaseException | str | Mapping[str, Any], *, debug: bool = False) -> str:
    """Render and serialize a value into a text frame."""
    return json.dumps(render_outbound(value, debug=debug), default=str)
