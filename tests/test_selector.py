"""Tests for the one-time API surface decision."""

from unittest.mock import AsyncMock

import pytest

from guest_mau_engine.graph.selector import (
    STATE_ACQUIRE,
    STATE_PREVIEW,
    STATE_STABLE,
    DependencyAcquisitionError,
    acquire_missing,
    select_surface,
)

ALL = {"users": True, "auditLogs": True}
NO_AUDIT = {"users": True, "auditLogs": False}
NONE = {"users": False, "auditLogs": False}


class TestSelectSurface:

    def test_stable_preferred_on_tie(self):
        selection = select_surface(ALL, ALL)
        assert selection.state == STATE_STABLE
        assert selection.config.use_stable_surface is True
        assert selection.config.surface == "stable"
        assert not selection.requires_confirmation

    def test_stable_when_preview_missing(self):
        assert select_surface(ALL, NONE).config.surface == "stable"

    def test_preview_when_stable_incomplete(self):
        selection = select_surface(NO_AUDIT, ALL)
        assert selection.state == STATE_PREVIEW
        assert selection.config.use_stable_surface is False
        assert selection.missing == ["auditLogs"]

    def test_neither_defaults_to_stable(self):
        selection = select_surface(NO_AUDIT, NO_AUDIT)
        assert selection.state == STATE_ACQUIRE
        assert selection.config.surface == "stable"
        assert selection.missing == ["auditLogs"]

    @pytest.mark.parametrize("stable,preview", [
        (ALL, ALL), (ALL, NONE), (NO_AUDIT, ALL), (NONE, NONE), (NONE, NO_AUDIT),
    ])
    def test_endpoints_never_mix(self, stable, preview):
        config = select_surface(stable, preview).config
        version = "v1.0" if config.use_stable_surface else "beta"
        assert config.user_endpoint == f"{version}/users"
        assert config.audit_log_endpoint == f"{version}/auditLogs/directoryAudits"

    def test_empty_availability_is_fully_available(self):
        assert select_surface({}, {}).state == STATE_STABLE


class TestAcquireMissing:

    @pytest.mark.asyncio
    async def test_successful_acquisition_records_nothing(self):
        acquire = AsyncMock()
        selection = await acquire_missing(select_surface(NONE, NONE), acquire)
        assert [c.args[0] for c in acquire.await_args_list] == ["users", "auditLogs"]
        assert selection.issues == []
        assert not selection.requires_confirmation

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_rest_still_tried(self):
        acquire = AsyncMock(side_effect=[DependencyAcquisitionError("no consent"), None])
        selection = await acquire_missing(select_surface(NONE, NONE), acquire)
        assert acquire.await_count == 2
        assert len(selection.issues) == 1
        issue = selection.issues[0]
        assert issue.kind == "acquisition"
        assert issue.category == "selection"
        assert "users" in issue.message and "no consent" in issue.message
        assert selection.requires_confirmation
        assert selection.config.surface == "stable"

    @pytest.mark.asyncio
    async def test_no_acquirer_records_every_missing_dependency(self):
        selection = await acquire_missing(select_surface(NONE, NO_AUDIT), None)
        assert len(selection.issues) == 2

    @pytest.mark.asyncio
    async def test_not_called_outside_state_c(self):
        acquire = AsyncMock()
        selection = await acquire_missing(select_surface(NO_AUDIT, ALL), acquire)
        acquire.assert_not_awaited()
        assert selection.config.surface == "preview"
