"""
Analysis data models: structured types passed from classification to reporting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class AnalysisIssue:
    """A non-fatal problem recorded during a run."""
    kind: str          # retrieval, date_parse, acquisition
    category: str      # feature key, or "guests" / "selection"
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "category": self.category, "message": self.message}


@dataclass
class SignInBuckets:
    """Guest accounts partitioned by their most recent sign-in."""
    this_period: list[dict] = field(default_factory=list)
    before: list[dict] = field(default_factory=list)
    never: list[dict] = field(default_factory=list)
    unparsed: list[dict] = field(default_factory=list)   # in no bucket
    with_sign_in_data: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "signed_in_this_period": len(self.this_period),
            "signed_in_before": len(self.before),
            "never_signed_in": len(self.never),
            "unparsable_timestamps": len(self.unparsed),
            "with_sign_in_data": self.with_sign_in_data,
        }


@dataclass
class FeatureAggregate:
    """Union of billable guests across feature categories."""
    total: frozenset[str] = frozenset()
    per_feature: dict[str, frozenset[str]] = field(default_factory=dict)
    per_feature_counts: dict[str, int] = field(default_factory=dict)

    @property
    def total_count(self) -> int:
        return len(self.total)

    def features_for(self, guest_id: str) -> list[str]:
        """Feature keys in which a guest was billable."""
        return [name for name, ids in self.per_feature.items() if guest_id in ids]


@dataclass
class MauReport:
    """Complete result of one estimation run."""
    tenant_name: str
    period_start: datetime
    generated_at: datetime
    surface: str = ""
    total_users: Optional[int] = None
    guest_count: int = 0
    feature_names: dict[str, str] = field(default_factory=dict)
    aggregate: FeatureAggregate = field(default_factory=FeatureAggregate)
    sign_in: SignInBuckets = field(default_factory=SignInBuckets)
    engagement_rate: float = 0.0
    issues: list[AnalysisIssue] = field(default_factory=list)
    safety: dict[str, Any] = field(default_factory=dict)

    @property
    def billable_count(self) -> int:
        return self.aggregate.total_count

    def issues_by_category(self) -> dict[str, list[AnalysisIssue]]:
        grouped: dict[str, list[AnalysisIssue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.category, []).append(issue)
        return grouped

    def to_dict(self) -> dict:
        return {
            "tenant_name": self.tenant_name,
            "period_start": self.period_start.isoformat(),
            "generated_utc": self.generated_at.isoformat(),
            "api_surface": self.surface,
            "tenant": {
                "total_users": self.total_users,
                "guest_accounts": self.guest_count,
            },
            "sign_in_activity": self.sign_in.to_dict(),
            "features": {
                key: {
                    "display_name": self.feature_names.get(key, key),
                    "billable_guests": self.aggregate.per_feature_counts.get(key, 0),
                }
                for key in self.aggregate.per_feature_counts
            },
            "billable_guests_total": self.billable_count,
            "billable_guest_ids": sorted(self.aggregate.total),
            "engagement_rate": round(self.engagement_rate, 4),
            "issues": [i.to_dict() for i in self.issues],
            "safety": self.safety,
        }
