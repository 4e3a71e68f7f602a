"""
Read-only enforcement. Every outbound Graph request is checked here before it
is sent; anything other than a read method is refused and remembered so the
exported report can prove the run never wrote to the tenant.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone

logger = logging.getLogger("guest_mau_engine.safety")

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class SafetyViolation(Exception):
    """A request would have changed tenant state."""
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SafetyGuardian:

    def __init__(self):
        self.started_at = _now()
        self.checks_performed = 0
        self.violations: list[dict] = []

    def validate_request(self, method: str, url: str) -> bool:
        """True for a read method; otherwise record and raise SafetyViolation."""
        self.checks_performed += 1
        verb = method.upper()
        if verb in READ_METHODS:
            return True

        reason = "Write HTTP method blocked"
        self.violations.append({"timestamp": _now(), "method": verb, "url": url, "reason": reason})
        logger.critical(f"Blocked {verb} {url}: {reason}")
        raise SafetyViolation(f"{reason}: {verb} {url}")

    def get_audit_record(self) -> dict:
        """Summary embedded in the JSON export under `safety`."""
        blocked = len(self.violations)
        return {
            "mode": "READ-ONLY",
            "started_at": self.started_at,
            "checks_performed": self.checks_performed,
            "violations_detected": blocked,
            "violations": list(self.violations),
            "status": "VIOLATIONS_DETECTED" if blocked else "CLEAN",
        }

    @staticmethod
    def print_banner():
        encoding = (getattr(sys.stdout, "encoding", None) or "").lower().replace("-", "")
        fancy = sys.stdout.isatty() and encoding.startswith("utf")
        rule = ("═" if fancy else "=") * 70
        print(rule)
        print("  GUEST MAU EXPOSURE ESTIMATE -- READ-ONLY")
        print("  * Reads guest accounts and directory audit logs only")
        print("  * Nothing in the tenant is created, changed or deleted")
        print("  * Each request is checked before it is sent")
        print(rule)
