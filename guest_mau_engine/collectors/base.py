"""
Collector framework. A collector reads one kind of data through the run's
DirectorySurface and returns it in a CollectorResult together with the
non-fatal issues it hit along the way.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..analysis.models import AnalysisIssue
from ..config import AnalysisConfig
from ..graph.surfaces import DirectorySurface

logger = logging.getLogger("guest_mau_engine.collectors")


@dataclass
class CollectorResult:
    """Data, issues and bookkeeping from one collector run."""
    collector_name: str
    data: dict[str, Any] = field(default_factory=dict)
    issues: list[AnalysisIssue] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.metadata = {
            "collector": self.collector_name,
            "started_at": None,
            "completed_at": None,
            "duration_seconds": 0,
            "items_collected": 0,
            "queries": 0,
            **self.metadata,
        }

    def add_data(self, key: str, value: Any):
        """Store a value; lists count their length toward items_collected."""
        self.data[key] = value
        self.metadata["items_collected"] += len(value) if isinstance(value, list) else 1

    def record_query(self, items: int = 0):
        self.metadata["queries"] += 1
        self.metadata["items_collected"] += items

    def add_issue(self, kind: str, category: str, message: str):
        self.issues.append(AnalysisIssue(kind, category, message))
        logger.info(f"[{self.collector_name}:{category}] {message}")


class BaseCollector(ABC):
    """
    Subclasses implement `collect()`. `execute()` wraps it with timing and
    turns any exception that escapes into a retrieval issue, so a broken
    collector leaves an empty result instead of ending the run.
    """

    name: str = "base"
    description: str = ""

    def __init__(self, surface: DirectorySurface, config: AnalysisConfig):
        self.surface = surface
        self.config = config

    async def execute(self) -> CollectorResult:
        result = CollectorResult(self.name)
        started = time.time()
        result.metadata["started_at"] = started
        logger.info(f"[{self.name}] collecting from the {self.surface.surface} surface")

        try:
            await self.collect(result)
        except Exception as e:
            logger.info(f"[{self.name}] collector raised", exc_info=True)
            result.add_issue("retrieval", self.name, f"{type(e).__name__}: {e}")

        finished = time.time()
        result.metadata["completed_at"] = finished
        result.metadata["duration_seconds"] = round(finished - started, 2)
        logger.info(
            f"[{self.name}] done: {result.metadata['items_collected']} items, "
            f"{result.metadata['queries']} queries, {result.metadata['duration_seconds']}s"
        )
        return result

    @abstractmethod
    async def collect(self, result: CollectorResult):
        raise NotImplementedError
