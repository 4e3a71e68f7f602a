"""
Signal extraction from directory audit records.

Audit records carry the same facts in two shapes:

  additionalDetails                         [{"key": ..., "value": ...}]
  targetResources[].modifiedProperties      [{"displayName": ..., "newValue": ...}]

The flat `additionalDetails` list is read first. The nested
`modifiedProperties` list is only consulted for the target user type, and only
when the flat list did not already mark the target as a guest. Its values are
JSON-encoded, so a guest shows up as the literal text "Guest" with quotes.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional

LICENSE_FEATURE_KEY = "GovernanceLicenseFeatureUsed"
TARGET_USER_TYPE_KEY = "TargetUserType"
TARGET_ID_KEY = "TargetId"

LICENSE_USED_VALUE = "True"
GUEST_VALUE = "Guest"
QUOTED_GUEST_VALUE = '"Guest"'


@dataclass(frozen=True)
class Signal:
    governance_license_used: bool = False
    target_is_guest: bool = False
    target_user_id: Optional[str] = None
    # Raw user type as reported (e.g. "Member"); None when no record field said.
    target_user_type: Optional[str] = None


def _entries(value: Any) -> Iterable[dict]:
    if not isinstance(value, list):
        return ()
    return (item for item in value if isinstance(item, dict))


def _from_additional_details(record: dict, signal: Signal) -> Signal:
    for detail in _entries(record.get("additionalDetails")):
        key = detail.get("key")
        value = detail.get("value")
        if key == LICENSE_FEATURE_KEY:
            signal = replace(signal, governance_license_used=value == LICENSE_USED_VALUE)
        elif key == TARGET_USER_TYPE_KEY:
            signal = replace(
                signal,
                target_is_guest=value == GUEST_VALUE,
                target_user_type=value or None,
            )
        elif key == TARGET_ID_KEY and value:
            signal = replace(signal, target_user_id=value)
    return signal


def _from_modified_properties(record: dict, signal: Signal) -> Signal:
    if signal.target_is_guest:
        return signal
    for resource in _entries(record.get("targetResources")):
        for prop in _entries(resource.get("modifiedProperties")):
            if prop.get("displayName") != TARGET_USER_TYPE_KEY:
                continue
            value = prop.get("newValue")
            if value == QUOTED_GUEST_VALUE:
                return replace(signal, target_is_guest=True, target_user_type=GUEST_VALUE)
            if signal.target_user_type is None and isinstance(value, str) and value.strip('"'):
                signal = replace(signal, target_user_type=value.strip('"'))
    return signal


_PIPELINE = (_from_additional_details, _from_modified_properties)


def extract_signal(record: dict) -> Signal:
    """Extract the billing signal from one audit record. Never raises on shape."""
    signal = Signal()
    if not isinstance(record, dict):
        return signal
    for step in _PIPELINE:
        signal = step(record, signal)
    return signal
