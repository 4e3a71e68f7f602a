"""Tests for end-to-end report computation."""

from datetime import datetime, timezone

import pytest

from guest_mau_engine.analysis import AnalysisIssue, compute_report
from guest_mau_engine.config import DEFAULT_FEATURES

from conftest import audit_record, billable_record, guest


@pytest.fixture
def features():
    return list(DEFAULT_FEATURES)


def _records(features, *per_feature):
    return {f.key: records for f, records in zip(features, per_feature)}


class TestComputeReport:

    def test_distinct_billable_population(self, features, period_start):
        audit = _records(
            features,
            [billable_record("G1"), billable_record("M1", user_type="Member")],
            [billable_record("G1"), billable_record("G2")],
            [billable_record("G3", license_used="False")],
        )
        guests = [guest(f"G{i}", last="2024-05-02T00:00:00Z") for i in range(1, 5)]
        report = compute_report(
            tenant_name="Contoso",
            features=features,
            guests=guests,
            audit_records=audit,
            period_start=period_start,
            total_users=40,
            guest_count=4,
        )
        assert report.billable_count == 2
        assert report.aggregate.per_feature_counts == {
            features[0].key: 1, features[1].key: 2, features[2].key: 0,
        }
        assert report.engagement_rate == pytest.approx(0.5)
        assert len(report.sign_in.this_period) == 4

    def test_failed_feature_is_empty(self, features, period_start):
        report = compute_report(
            tenant_name="Contoso",
            features=features,
            guests=[],
            audit_records={features[0].key: [billable_record("G1")], features[1].key: None},
            period_start=period_start,
            issues=[AnalysisIssue("retrieval", features[1].key, "403")],
        )
        assert report.billable_count == 1
        assert report.aggregate.per_feature_counts[features[1].key] == 0
        assert report.aggregate.per_feature_counts[features[2].key] == 0
        assert report.issues_by_category() == {
            features[1].key: [AnalysisIssue("retrieval", features[1].key, "403")]
        }

    def test_guest_count_falls_back_to_enumeration(self, features, period_start):
        report = compute_report(
            tenant_name="T",
            features=features,
            guests=[guest("G1"), guest("G2")],
            audit_records={},
            period_start=period_start,
            guest_count=None,
        )
        assert report.guest_count == 2
        assert report.engagement_rate == 0.0

    def test_zero_guests(self, features, period_start):
        report = compute_report(
            tenant_name="T",
            features=features,
            guests=[],
            audit_records=_records(features, [billable_record("G1")]),
            period_start=period_start,
            guest_count=0,
        )
        assert report.engagement_rate == 0.0

    def test_unparsable_sign_in_becomes_issue(self, features, period_start):
        report = compute_report(
            tenant_name="T",
            features=features,
            guests=[guest("G1", last="garbage")],
            audit_records={},
            period_start=period_start,
        )
        assert [i.kind for i in report.issues] == ["date_parse"]
        assert report.issues[0].category == "guests"

    def test_to_dict(self, features, period_start):
        generated = datetime(2024, 5, 20, tzinfo=timezone.utc)
        report = compute_report(
            tenant_name="Contoso",
            features=features,
            guests=[guest("G1")],
            audit_records=_records(features, [billable_record("G1"), audit_record()]),
            period_start=period_start,
            surface="stable",
            generated_at=generated,
        )
        data = report.to_dict()
        assert data["tenant_name"] == "Contoso"
        assert data["api_surface"] == "stable"
        assert data["generated_utc"] == generated.isoformat()
        assert data["billable_guests_total"] == 1
        assert data["billable_guest_ids"] == ["G1"]
        assert data["features"][features[0].key]["display_name"] == features[0].display_name
        assert data["engagement_rate"] == 1.0
