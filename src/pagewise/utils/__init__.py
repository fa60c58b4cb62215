"""Utility helpers shared across pagewise."""

from .logging import bind_turn, current_turn, get_log_path, setup_logging

__all__ = ["bind_turn", "current_turn", "get_log_path", "setup_logging"]
