"""
Feature aggregation: unions per-feature billable sets into one population.
"""

from __future__ import annotations

from typing import AbstractSet, Mapping, Optional

from .models import FeatureAggregate


def aggregate_features(
    per_feature: Mapping[str, Optional[AbstractSet[str]]],
) -> FeatureAggregate:
    """
    Union billable guests across features and count each feature.
    A feature mapped to None (failed retrieval) counts as empty.
    """
    sets = {name: frozenset(ids or ()) for name, ids in per_feature.items()}
    total = frozenset().union(*sets.values())
    return FeatureAggregate(
        total=total,
        per_feature=sets,
        per_feature_counts={name: len(ids) for name, ids in sets.items()},
    )


def engagement_rate(billable_count: int, guest_count: int) -> float:
    """Share of guest accounts that are billable; 0.0 when there are no guests."""
    if guest_count <= 0:
        return 0.0
    return billable_count / guest_count
