"""Response helpers shared by the request executor and the CLI.

The API reports failures in a JSON envelope::

    {"error": {"code": "Request_ResourceNotFound", "message": "..."}}

:func:`parse_error_envelope` extracts that pair, falling back to the HTTP
reason phrase and a truncated body for anything else.
"""

from __future__ import annotations

from typing import Any

import httpx


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Returns the decoded JSON when possible, the raw text otherwise, and
    ``None`` for an empty body (e.g. ``204 No Content``).
    """
    if not response.content:
        return None

    try:
        return response.json()
    except ValueError:
        return response.text


def parse_error_envelope(response: httpx.Response) -> tuple[str, str]:
    """Return the ``(code, message)`` of a failed response."""
    data = extract_response_data(response)
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            code = str(error.get("code") or response.reason_phrase or "Unknown")
            return code, str(error.get("message") or "")
        if isinstance(error, str):
            return error, str(data.get("error_description") or data.get("message") or "")

    code = response.reason_phrase or f"HTTP{response.status_code}"
    message = data[:200] if isinstance(data, str) else ""
    return code, message
