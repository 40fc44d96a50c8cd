"""Issue annotation rendering."""

from .annotations import AnnotationRenderer, RenderPhase, RenderReport, ResolvedMark

__all__ = ["AnnotationRenderer", "RenderPhase", "RenderReport", "ResolvedMark"]
