"""
Audit Log Collector
Queries directory audits once per governance feature category, in order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from ..config import AnalysisConfig
from ..graph.surfaces import DirectorySurface, build_audit_filter
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("guest_mau_engine.collectors.audit")


class AuditLogCollector(BaseCollector):
    name = "audit_logs"
    description = "Directory audit records per governance feature"

    def __init__(
        self,
        surface: DirectorySurface,
        config: AnalysisConfig,
        period_start: datetime,
        period_end: Optional[datetime] = None,
    ):
        super().__init__(surface, config)
        self.period_start = period_start
        self.period_end = period_end or datetime.now(timezone.utc)

    async def collect(self, result: CollectorResult):
        records_by_feature: dict[str, list[dict]] = {}
        filters: dict[str, str] = {}

        for feature in self.config.features:
            odata_filter = build_audit_filter(feature, self.period_start, self.period_end)
            filters[feature.key] = odata_filter
            try:
                records = await self.surface.query_audit_logs(odata_filter)
            except Exception as e:
                result.add_issue(
                    "retrieval",
                    feature.key,
                    f"{feature.display_name} audit query failed: {type(e).__name__}: {e}",
                )
                records = []
            result.record_query(len(records))
            records_by_feature[feature.key] = records
            logger.info(f"[audit_logs:{feature.key}] {len(records)} records")

        result.data["records"] = records_by_feature
        result.data["filters"] = filters
