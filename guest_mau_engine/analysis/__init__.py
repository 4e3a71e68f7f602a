"""Analysis package: audit signal classification and guest activity reporting."""

from .models import AnalysisIssue, FeatureAggregate, MauReport, SignInBuckets
from .signals import Signal, extract_signal
from .billable import classify_billable, is_billable
from .aggregate import aggregate_features, engagement_rate
from .signin import classify_sign_in_activity, current_period_start
from .engine import compute_report

__all__ = [
    "AnalysisIssue",
    "FeatureAggregate",
    "MauReport",
    "SignInBuckets",
    "Signal",
    "extract_signal",
    "classify_billable",
    "is_billable",
    "aggregate_features",
    "engagement_rate",
    "classify_sign_in_activity",
    "current_period_start",
    "compute_report",
]
