from __future__ import annotations

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_log(scope: str, message: str) -> None:
    """Print a scoped debug line when debug logging is enabled."""
    if _DEBUG_LOG:
        print(f"[yomi {scope} debug] {message}")


__all__ = ["set_debug_logging", "debug_log"]
