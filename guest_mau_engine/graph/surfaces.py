"""
Directory API surfaces: the stable (v1.0) and preview (beta) Graph surfaces.

A run picks exactly one surface and holds it for its whole lifetime, so the
user endpoint and the audit-log endpoint always come from the same API version.
"""

from __future__ import annotations

import logging
from abc import ABC
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from ..config import (
    AUDIT_PAGE_SIZE,
    DEFAULT_PAGE_SIZE,
    GRAPH_API_VERSION,
    GRAPH_BETA_VERSION,
    FeatureCategory,
)
from .client import GraphAPIError, GraphClient

logger = logging.getLogger("guest_mau_engine.graph.surfaces")

STABLE = "stable"
PREVIEW = "preview"

# Dependencies a run needs on whichever surface it uses.
USERS = "users"
AUDIT_LOGS = "auditLogs"
DEPENDENCIES = (USERS, AUDIT_LOGS)

USERS_PATH = "users"
AUDIT_LOGS_PATH = "auditLogs/directoryAudits"

GUEST_FILTER = "userType eq 'Guest'"
GUEST_SELECT = "id,userType,mail,userPrincipalName,signInActivity"

_VERSIONS = {STABLE: GRAPH_API_VERSION, PREVIEW: GRAPH_BETA_VERSION}


@dataclass(frozen=True)
class ModuleEndpointConfig:
    """The endpoint pair chosen for a run. Never mixes surfaces."""
    surface: str
    use_stable_surface: bool
    user_endpoint: str
    audit_log_endpoint: str

    @property
    def version(self) -> str:
        return _VERSIONS[self.surface]


def build_endpoint_config(surface: str) -> ModuleEndpointConfig:
    """Derive both endpoints from one surface decision."""
    if surface not in _VERSIONS:
        raise ValueError(f"Unknown API surface: {surface!r}")
    version = _VERSIONS[surface]
    return ModuleEndpointConfig(
        surface=surface,
        use_stable_surface=surface == STABLE,
        user_endpoint=f"{version}/{USERS_PATH}",
        audit_log_endpoint=f"{version}/{AUDIT_LOGS_PATH}",
    )


def normalize_records(value: Any) -> list[dict]:
    """Coerce a null / single object / array result into a list of records."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    return [item for item in value if item is not None]


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _odata_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_audit_filter(
    feature: FeatureCategory,
    start: datetime,
    end: Optional[datetime] = None,
) -> str:
    """Build the OData $filter selecting one feature's audit activity in a window."""
    clauses = [f"activityDateTime ge {_odata_datetime(start)}"]
    if end is not None:
        clauses.append(f"activityDateTime le {_odata_datetime(end)}")
    clauses.append(f"category eq {_odata_literal(feature.audit_category)}")
    if feature.activities:
        activity_clause = " or ".join(
            f"activityDisplayName eq {_odata_literal(a)}" for a in feature.activities
        )
        clauses.append(f"({activity_clause})")
    return " and ".join(clauses)


class DirectorySurface(ABC):
    """
    Capability interface over one Graph API surface.
    Subclasses only pin the surface; every call goes through the shared
    endpoint config so the two resources cannot drift apart.
    """

    surface: str = ""

    def __init__(
        self,
        graph: GraphClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        audit_page_size: int = AUDIT_PAGE_SIZE,
    ):
        self.graph = graph
        self.endpoints = build_endpoint_config(self.surface)
        self.page_size = page_size
        self.audit_page_size = audit_page_size

    @property
    def version(self) -> str:
        return self.endpoints.version

    async def list_guest_accounts(self) -> list[dict]:
        """Enumerate guest accounts with their sign-in activity."""
        items = await self.graph.get_all_pages(
            USERS_PATH,
            params={
                "$filter": GUEST_FILTER,
                "$select": GUEST_SELECT,
                "$count": "true",
            },
            version=self.version,
            top=self.page_size,
        )
        return normalize_records(items)

    async def count_users(self) -> int:
        return await self.graph.get_count(USERS_PATH, version=self.version)

    async def count_guests(self) -> int:
        return await self.graph.get_count(
            USERS_PATH, params={"$filter": GUEST_FILTER}, version=self.version
        )

    async def query_audit_logs(self, odata_filter: str) -> list[dict]:
        """Run one directoryAudits query and return its records."""
        items = await self.graph.get_all_pages(
            AUDIT_LOGS_PATH,
            params={"$filter": odata_filter},
            version=self.version,
            top=self.audit_page_size,
        )
        return normalize_records(items)


class StableSurface(DirectorySurface):
    surface = STABLE


class PreviewSurface(DirectorySurface):
    surface = PREVIEW


_SURFACE_CLASSES = {STABLE: StableSurface, PREVIEW: PreviewSurface}


def open_surface(
    config: ModuleEndpointConfig,
    graph: GraphClient,
    page_size: int = DEFAULT_PAGE_SIZE,
    audit_page_size: int = AUDIT_PAGE_SIZE,
) -> DirectorySurface:
    """Build the single surface handle a run uses from its endpoint config."""
    cls = _SURFACE_CLASSES[config.surface]
    return cls(graph, page_size=page_size, audit_page_size=audit_page_size)


async def probe_dependency(graph: GraphClient, surface: str, dependency: str) -> bool:
    """Check that one dependency answers on a surface with the current token."""
    path = USERS_PATH if dependency == USERS else AUDIT_LOGS_PATH
    try:
        data = await graph.get(path, params={"$top": "1"}, version=_VERSIONS[surface])
    except (GraphAPIError, httpx.HTTPError) as e:
        logger.info(f"Probe {surface}/{dependency} failed: {e}")
        return False
    unavailable = data.get("_forbidden") or data.get("_not_found") or data.get("_max_retries_exceeded")
    if unavailable:
        logger.info(f"Probe {surface}/{dependency} unavailable: {data.get('_error_message', 'not found')}")
    return not unavailable


async def probe_surface(graph: GraphClient, surface: str) -> dict[str, bool]:
    """Availability of every dependency on one surface, probed in order."""
    availability = {}
    for dependency in DEPENDENCIES:
        availability[dependency] = await probe_dependency(graph, surface, dependency)
    return availability


# Graph permission that normally unlocks each dependency.
DEPENDENCY_PERMISSIONS = {
    USERS: "User.Read.All",
    AUDIT_LOGS: "AuditLog.Read.All",
}
