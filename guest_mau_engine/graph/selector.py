"""
API surface selector.

Decides once per run which Graph surface (stable v1.0 or preview beta) serves
both the user enumeration and the audit-log queries:

  A. every stable dependency available          -> stable
  B. otherwise every preview dependency available -> preview
  C. otherwise                                   -> stable, after trying to
     acquire each missing stable dependency

Acquisition failures never change the decision. They are recorded so the
caller can ask for an explicit continue/abort before proceeding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping, Optional

from ..analysis.models import AnalysisIssue
from .surfaces import PREVIEW, STABLE, ModuleEndpointConfig, build_endpoint_config

logger = logging.getLogger("guest_mau_engine.graph.selector")

STATE_STABLE = "A"
STATE_PREVIEW = "B"
STATE_ACQUIRE = "C"


class DependencyAcquisitionError(Exception):
    """Raised by an acquisition step that could not make a dependency available."""
    pass


Acquirer = Callable[[str], Awaitable[None]]


@dataclass
class SurfaceSelection:
    """Outcome of the one-time surface decision."""
    config: ModuleEndpointConfig
    state: str
    missing: list[str] = field(default_factory=list)
    issues: list[AnalysisIssue] = field(default_factory=list)

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.issues)


def _missing(availability: Mapping[str, bool]) -> list[str]:
    return [key for key, available in availability.items() if not available]


def select_surface(
    stable_availability: Mapping[str, bool],
    preview_availability: Mapping[str, bool],
) -> SurfaceSelection:
    """Pick one surface for the whole run. Stable wins ties."""
    missing_stable = _missing(stable_availability)
    if not missing_stable:
        logger.info("All stable dependencies available; using stable surface")
        return SurfaceSelection(build_endpoint_config(STABLE), STATE_STABLE)

    if not _missing(preview_availability):
        logger.info(
            f"Stable surface missing {missing_stable}; preview fully available, using preview"
        )
        return SurfaceSelection(
            build_endpoint_config(PREVIEW), STATE_PREVIEW, missing=missing_stable
        )

    logger.info(f"Neither surface fully available; defaulting to stable, missing {missing_stable}")
    return SurfaceSelection(
        build_endpoint_config(STABLE), STATE_ACQUIRE, missing=missing_stable
    )


async def acquire_missing(
    selection: SurfaceSelection,
    acquire: Optional[Acquirer],
) -> SurfaceSelection:
    """
    Try to acquire every missing stable dependency of a state C selection.
    Each failure is recorded and the remaining dependencies are still tried.
    """
    if selection.state != STATE_ACQUIRE:
        return selection

    for key in selection.missing:
        if acquire is None:
            message = f"No acquisition step available for stable dependency '{key}'"
        else:
            try:
                await acquire(key)
                logger.info(f"Acquired stable dependency '{key}'")
                continue
            except Exception as e:
                message = f"Could not acquire stable dependency '{key}': {e}"
        logger.info(message)
        selection.issues.append(AnalysisIssue("acquisition", "selection", message))
    return selection
