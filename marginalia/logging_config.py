"""
Logging configuration for marginalia

Includes IndentLogger for tree-style traces of anchor resolution passes.
"""

import logging
import sys
from contextlib import contextmanager


class GlobalIndent:
    """Global indentation and tree state for hierarchical logging"""

    _level = 0
    _tree_chars = {
        "pipe": "│",
        "branch": "├──",
        "leaf": "└──",
    }
    _active_branches: set[int] = set()

    @classmethod
    def increase(cls) -> None:
        """Increase indentation level"""
        cls._level += 1
        cls._active_branches.add(cls._level - 1)

    @classmethod
    def decrease(cls) -> None:
        """Decrease indentation level"""
        if cls._level > 0:
            cls._active_branches.discard(cls._level - 1)
            cls._level -= 1

    @classmethod
    def reset(cls) -> None:
        """Reset indentation state (useful for tests)"""
        cls._level = 0
        cls._active_branches = set()

    @classmethod
    def get_indent(cls) -> str:
        """Get current indentation string with tree characters"""
        if cls._level == 0:
            return ""

        parts = []
        for i in range(cls._level - 1):
            if i in cls._active_branches:
                parts.append(f"{cls._tree_chars['pipe']}   ")
            else:
                parts.append("    ")

        is_end = (cls._level - 1) not in cls._active_branches
        parts.append(cls._tree_chars["leaf"] if is_end else cls._tree_chars["branch"])
        return "".join(parts)


class IndentLogger:
    """Logger wrapper that handles indentation using global state"""

    def __init__(self, base_logger: logging.Logger) -> None:
        self._logger = base_logger

    def debug(self, msg: str, *args, **kwargs) -> None:
        """Log debug message with indentation"""
        self._logger.debug(f"{self.indent}{msg}", *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        """Log info message with indentation"""
        self._logger.info(f"{self.indent}{msg}", *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        """Log warning message with indentation"""
        self._logger.warning(f"{self.indent}{msg}", *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        """Log error message with indentation"""
        self._logger.error(f"{self.indent}{msg}", *args, **kwargs)

    @property
    def indent(self) -> str:
        """Get current indentation string"""
        return GlobalIndent.get_indent()

    @contextmanager
    def indent_block(self, initial_message: str | None = None):
        """
        Context manager for handling indentation blocks

        Args:
            initial_message: Optional message to log at block start
        """
        if initial_message:
            self.debug(initial_message)
        GlobalIndent.increase()
        try:
            yield
        finally:
            GlobalIndent.decrease()

    @contextmanager
    def layer_block(self, number: int, name: str):
        """
        Indent the trace of one resolution layer under a "Layer N (name)" line

        Args:
            number: Position of the layer in the resolution order, from 1
            name: Confidence level the layer produces
        """
        with self.indent_block(f"Layer {number} ({name})"):
            yield


def setup_logging(level=logging.INFO):
    """
    Configure logging for marginalia

    Args:
        level: Logging level (default: INFO)

    Returns:
        IndentLogger: Configured logger with indentation support
    """
    base_logger = logging.getLogger("marginalia")
    base_logger.setLevel(level)
    base_logger.handlers = []

    # Tree characters need UTF-8 (Windows consoles default to cp1252)
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(levelname)8s %(message)s"))
    base_logger.addHandler(handler)

    return IndentLogger(base_logger)


logger = IndentLogger(logging.getLogger("marginalia"))
