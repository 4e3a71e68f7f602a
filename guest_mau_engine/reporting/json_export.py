"""
JSON exporter: Produces the full machine-readable estimate.
"""

from __future__ import annotations

import json
from pathlib import Path

from .. import __version__
from ..analysis.models import MauReport


def export_json(report: MauReport, output_dir: Path, run_id: str) -> Path:
    """
    Write the report to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "engine": "Guest MAU Exposure Engine",
            "version": __version__,
            "run_id": run_id,
            "mode": "READ-ONLY",
            "approximation": (
                "Audit targets with a resolved id are counted unless the record "
                "names a non-guest user type; the figure is an upper-bound "
                "estimate, not an invoice."
            ),
        },
        "report": report.to_dict(),
        "billable_guests_by_feature": {
            key: sorted(ids) for key, ids in report.aggregate.per_feature.items()
        },
    }

    filepath = output_dir / f"guest_mau_estimate_{run_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
