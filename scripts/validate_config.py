"""
Client configuration validation script.

Validates the client config document against CLIENT_CONFIG_SCHEMA and
prints the resolved settings.

Design rules:
- No side effects on import
- No network, no event store access
- Validation only (no mutation)
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from shared.config.client import ConfigError, load_client_config  # noqa: E402


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    path = Path(argv[0]) if argv else None

    try:
        config = load_client_config(path=path)
    except ConfigError as e:
        _error(str(e))
        print("Configuration validation failed.", file=sys.stderr)
        return 1

    print(f"api.base_url            = {config.api.base_url}")
    print(f"api.chat_endpoint       = {config.api.chat_endpoint}")
    print(f"api.orchestrator        = {config.api.orchestrator_endpoint}")
    print(f"api.token               = {'<set>' if config.api.token else '<unset>'}")
    print(f"session.inactivity      = {config.session.inactivity_timeout_minutes} min")
    print(f"session.max_duration    = {config.session.max_session_duration_minutes} min")
    print(f"storage.event_store     = {config.storage.event_store_path}")
    print("Configuration validation passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
