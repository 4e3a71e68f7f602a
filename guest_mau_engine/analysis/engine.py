"""
Report Engine: Turns collected guests and audit records into a MauReport.

Pipeline:
  - Each feature's audit records are classified into a fresh billable set.
  - The per-feature sets are unioned into the distinct billable population.
  - Guests are bucketed by sign-in activity against the period start.
  - Engagement rate = distinct billable guests / guest accounts.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from ..config import FeatureCategory
from .aggregate import aggregate_features, engagement_rate
from .billable import classify_billable
from .models import AnalysisIssue, MauReport
from .signin import classify_sign_in_activity

logger = logging.getLogger("guest_mau_engine.analysis")


def compute_report(
    *,
    tenant_name: str,
    features: Iterable[FeatureCategory],
    guests: list[dict],
    audit_records: Mapping[str, Optional[list[dict]]],
    period_start: datetime,
    total_users: Optional[int] = None,
    guest_count: Optional[int] = None,
    surface: str = "",
    issues: Iterable[AnalysisIssue] = (),
    generated_at: Optional[datetime] = None,
) -> MauReport:
    """
    Build the final report.

    `audit_records` maps feature key to that feature's records; a missing key
    or None (the retrieval failed) is classified as an empty set. When the
    tenant guest count is unknown the enumerated guest list length is used.
    """
    features = list(features)
    per_feature = {
        feature.key: classify_billable(audit_records.get(feature.key) or [])
        for feature in features
    }
    for key, ids in per_feature.items():
        logger.info(f"[{key}] {len(ids)} billable guest(s)")

    aggregate = aggregate_features(per_feature)
    sign_in = classify_sign_in_activity(guests, period_start)

    all_issues = list(issues)
    all_issues.extend(
        AnalysisIssue("date_parse", "guests", message) for message in sign_in.warnings
    )

    if guest_count is None or guest_count < 0:
        guest_count = len(guests)

    return MauReport(
        tenant_name=tenant_name,
        period_start=period_start,
        generated_at=generated_at or datetime.now(timezone.utc),
        surface=surface,
        total_users=total_users,
        guest_count=guest_count,
        feature_names={f.key: f.display_name for f in features},
        aggregate=aggregate,
        sign_in=sign_in,
        engagement_rate=engagement_rate(aggregate.total_count, guest_count),
        issues=all_issues,
    )
