"""
Sign-in activity classification for guest accounts.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from .models import SignInBuckets

logger = logging.getLogger("guest_mau_engine.analysis.signin")


def current_period_start(now: Optional[datetime] = None) -> datetime:
    """First instant (UTC) of the calendar month containing `now`."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def parse_graph_datetime(value: str) -> datetime:
    """
    Parse a Graph timestamp such as 2024-05-01T08:15:30.1234567Z.
    Naive values are read as UTC. Raises ValueError / TypeError on bad input.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def last_sign_in_value(account: dict) -> Optional[str]:
    """Interactive sign-in if recorded, otherwise non-interactive."""
    activity = account.get("signInActivity") or {}
    return (
        activity.get("lastSignInDateTime")
        or activity.get("lastNonInteractiveSignInDateTime")
        or None
    )


def _label(account: dict) -> str:
    return account.get("userPrincipalName") or account.get("mail") or account.get("id") or "<unknown>"


def classify_sign_in_activity(
    accounts: Iterable[dict],
    period_start: datetime,
) -> SignInBuckets:
    """
    Partition guests into signed in this period / before / never.
    Accounts whose timestamp cannot be parsed land in no bucket; they still
    count toward `with_sign_in_data` and produce a warning.
    """
    if period_start.tzinfo is None:
        period_start = period_start.replace(tzinfo=timezone.utc)
    buckets = SignInBuckets()
    for account in accounts:
        raw = last_sign_in_value(account)
        if raw is None:
            buckets.never.append(account)
            continue

        buckets.with_sign_in_data += 1
        try:
            signed_in = parse_graph_datetime(raw)
        except (ValueError, TypeError, AttributeError):
            message = f"Could not parse sign-in date {raw!r} for {_label(account)}"
            logger.info(message)
            buckets.warnings.append(message)
            buckets.unparsed.append(account)
            continue

        if signed_in > period_start:
            buckets.this_period.append(account)
        else:
            buckets.before.append(account)
    return buckets
