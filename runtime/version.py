"""Runtime version metadata for the unheardpath chat client.

Import-safe: exposes version identifiers for the CLI banner and the HTTP
User-Agent header without side effects.
"""

from __future__ import annotations

PROJECT_NAME = "unheardpath-chat"
VERSION = "0.1.0"
BUILD = "2026.10"

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "BUILD",
    "as_string",
    "user_agent",
]


def as_string() -> str:
    """Return a concise version string."""

    return f"{PROJECT_NAME} {VERSION} (Build {BUILD})"


def user_agent() -> str:
    return f"{PROJECT_NAME}/{VERSION}"
