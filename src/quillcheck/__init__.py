"""quillcheck: correction synchronization engine for rich-text writing assistants."""

__version__ = "0.3.0"

__all__ = ["__version__"]
