"""
Exception types used by the analyzer.

Only LuaSyntaxError leaves an inspection run. The others are raised by
individual operations and caught where the failure becomes data: an error
value on one node, or a warning attached to the inspection.
"""

from typing import Optional


class LuaInspectError(Exception):
    """Base class for analyzer errors."""


class LuaSyntaxError(LuaInspectError):
    """The parser could not produce a tree for the source."""

    def __init__(self, message: str, line: int = 0, column: int = 0, end_line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.end_line = end_line

    def __str__(self):
        if self.line:
            return f"line {self.line} column {self.column} - {self.message}"
        return self.message


class InferenceError(LuaInspectError):
    """A Lua operation failed while being evaluated abstractly."""


class DirectiveError(LuaInspectError):
    """An inline comment directive could not be parsed or applied."""


class ModuleLoadError(LuaInspectError):
    """A required module could not be located or read."""
