"""Plain-text projection, issue models, fingerprints, and fragment location."""

from .fingerprints import IssueFingerprint, IssueFingerprintTracker, fingerprint, has_significant_change
from .locate import LocateRequest, Match, locate
from .models import (
    CorrectionChange,
    DetectionOptions,
    DetectionResult,
    Issue,
    IssueContext,
    IssueType,
    RuleInfo,
    Severity,
    SummaryStats,
)
from .projector import PlainTextProjector, document_stats, project

__all__ = [
    "CorrectionChange",
    "DetectionOptions",
    "DetectionResult",
    "Issue",
    "IssueContext",
    "IssueFingerprint",
    "IssueFingerprintTracker",
    "IssueType",
    "LocateRequest",
    "Match",
    "PlainTextProjector",
    "RuleInfo",
    "Severity",
    "SummaryStats",
    "document_stats",
    "fingerprint",
    "has_significant_change",
    "locate",
    "project",
]
