from __future__ import annotations

import sys

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_log(message: str) -> None:
    """Print a diagnostic line to stderr when debug logging is on."""
    if _DEBUG_LOG:
        print(f"[folio debug] {message}", file=sys.stderr)
