"""Core value types shared by every engine component."""

from .ranges import TextRange, codepoint_offset, utf16_offset

__all__ = ["TextRange", "codepoint_offset", "utf16_offset"]
