"""
CSV exporter: Summary metrics, per-feature counts, and the billable guest list.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ..analysis.models import MauReport


def export_csv(report: MauReport, output_dir: Path, run_id: str) -> list[Path]:
    """
    Write CSV files for the summary, features and billable guests.

    Returns:
        List of created CSV file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    created = []

    # --- Summary ---
    summary_path = output_dir / f"summary_{run_id}.csv"
    with open(summary_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.writer(fh)
        writer.writerow(["metric", "value"])
        writer.writerow(["period_start", report.period_start.isoformat()])
        writer.writerow(["api_surface", report.surface])
        writer.writerow(["total_users", "" if report.total_users is None else report.total_users])
        writer.writerow(["guest_accounts", report.guest_count])
        for key, value in report.sign_in.to_dict().items():
            writer.writerow([key, value])
        writer.writerow(["billable_guests_total", report.billable_count])
        writer.writerow(["engagement_rate", round(report.engagement_rate, 4)])
        writer.writerow(["issues", len(report.issues)])
    created.append(summary_path)

    # --- Features ---
    features_path = output_dir / f"features_{run_id}.csv"
    with open(features_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=["feature", "display_name", "billable_guests", "issues"])
        writer.writeheader()
        issues = report.issues_by_category()
        for key, count in report.aggregate.per_feature_counts.items():
            writer.writerow({
                "feature": key,
                "display_name": report.feature_names.get(key, key),
                "billable_guests": count,
                "issues": len(issues.get(key, [])),
            })
    created.append(features_path)

    # --- Billable guests ---
    guests_path = output_dir / f"billable_guests_{run_id}.csv"
    with open(guests_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.writer(fh)
        writer.writerow(["guest_id", "features"])
        for guest_id in sorted(report.aggregate.total):
            writer.writerow([guest_id, ";".join(report.aggregate.features_for(guest_id))])
    created.append(guests_path)

    return created
