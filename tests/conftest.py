"""Shared fixtures for guest MAU engine tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from guest_mau_engine.config import AnalysisConfig
from guest_mau_engine.graph.surfaces import StableSurface


def audit_record(details=None, modified=None, **extra):
    """Build a directoryAudits record in either (or both) encodings."""
    record = dict(extra)
    if details is not None:
        record["additionalDetails"] = [{"key": k, "value": v} for k, v in details]
    if modified is not None:
        record["targetResources"] = [
            {
                "id": "resource-1",
                "modifiedProperties": [
                    {"displayName": name, "oldValue": None, "newValue": value}
                    for name, value in modified
                ],
            }
        ]
    return record


def billable_record(target_id, user_type="Guest", license_used="True"):
    return audit_record(details=[
        ("GovernanceLicenseFeatureUsed", license_used),
        ("TargetUserType", user_type),
        ("TargetId", target_id),
    ])


def guest(guest_id, last=None, non_interactive=None, with_activity=True):
    account = {
        "id": guest_id,
        "userType": "Guest",
        "mail": f"{guest_id}@partner.example",
        "userPrincipalName": f"{guest_id}_partner.example#EXT#@contoso.onmicrosoft.com",
    }
    if with_activity:
        account["signInActivity"] = {
            "lastSignInDateTime": last,
            "lastNonInteractiveSignInDateTime": non_interactive,
        }
    return account


@pytest.fixture
def period_start():
    return datetime(2024, 5, 1, tzinfo=timezone.utc)


@pytest.fixture
def analysis_config():
    return AnalysisConfig()


@pytest.fixture
def mock_graph():
    """A GraphClient stand-in with async read methods."""
    graph = MagicMock()
    graph.get = AsyncMock(return_value={"value": []})
    graph.get_all_pages = AsyncMock(return_value=[])
    graph.get_count = AsyncMock(return_value=0)
    return graph


@pytest.fixture
def stable_surface(mock_graph):
    return StableSurface(mock_graph)
