"""
Billable guest classification for one feature category.

A record counts when the governance license flag is set and the target is
either flagged as a guest or resolved to a user id whose type the record does
not state. The second half is loose on purpose: an id with no user type is
still counted, so the estimate leans toward overcounting rather than missing
billable guests. A target explicitly typed as something other than Guest is
not counted. This has not been checked against actual invoices and is
reported as an approximation.
"""

from __future__ import annotations

from typing import Iterable

from .signals import Signal, extract_signal


def is_billable(signal: Signal) -> bool:
    if not signal.governance_license_used or signal.target_user_id is None:
        # A confirmed guest with no id has nothing to key the set by.
        return False
    if signal.target_is_guest:
        return True
    return signal.target_user_type is None


def classify_billable(records: Iterable[dict]) -> frozenset[str]:
    """Reduce audit records to the set of unique billable guest ids."""
    billable = set()
    for record in records:
        signal = extract_signal(record)
        if is_billable(signal):
            billable.add(signal.target_user_id)
    return frozenset(billable)
