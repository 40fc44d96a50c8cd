"""Single and batch correction of rich content."""

from .applier import ApplyOutcome, BatchOutcome, CorrectionApplier, apply_many, apply_one
from .rich_map import RichTextMap

__all__ = ["ApplyOutcome", "BatchOutcome", "CorrectionApplier", "RichTextMap", "apply_many", "apply_one"]
