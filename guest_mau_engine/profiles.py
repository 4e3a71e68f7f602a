"""
Named tenant profiles, so consultants can estimate several tenants without
retyping tenant/client ids.

Stored as JSON in ~/.guest_mau_engine/profiles.json:

    {
      "default_profile": "contoso",
      "profiles": {
        "contoso": {"tenant_id": "...", "client_id": "...", "auth_mode": "certificate", ...}
      }
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger("guest_mau_engine.profiles")

DEFAULT_PROFILES_FILE = Path.home() / ".guest_mau_engine" / "profiles.json"
AUTH_MODES = ("certificate", "delegated")
DEFAULT_CERT_PATH = "./base64.txt"


@dataclass
class TenantProfile:
    name: str
    tenant_id: str
    client_id: str
    auth_mode: str = "certificate"
    cert_path: str = DEFAULT_CERT_PATH     # certificate mode only
    tenant_display_name: str = ""          # shown in report headers
    notes: str = ""

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "TenantProfile":
        return cls(
            name=name,
            tenant_id=data["tenant_id"],
            client_id=data["client_id"],
            auth_mode=data.get("auth_mode", "certificate"),
            cert_path=data.get("cert_path", DEFAULT_CERT_PATH),
            tenant_display_name=data.get("tenant_display_name", ""),
            notes=data.get("notes", ""),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        del data["name"]
        return data

    def resolve_cert_path(self) -> str:
        """Absolute certificate path; `~` and relative paths resolve against the cwd."""
        path = Path(self.cert_path).expanduser()
        return str(path if path.is_absolute() else Path.cwd() / path)


@dataclass
class ProfileStore:
    path: Path = DEFAULT_PROFILES_FILE
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """
        Read the profile file. A missing file gives an empty store; an
        unreadable one is logged and also gives an empty store.
        """
        store_path = Path(path) if path else DEFAULT_PROFILES_FILE
        if not store_path.exists():
            return cls(path=store_path)
        try:
            raw = json.loads(store_path.read_text(encoding="utf-8"))
            profiles = {
                name: TenantProfile.from_dict(name, data)
                for name, data in raw.get("profiles", {}).items()
            }
        except (json.JSONDecodeError, KeyError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable profile file {store_path}: {e}")
            return cls(path=store_path)
        return cls(path=store_path, profiles=profiles, default_profile=raw.get("default_profile", ""))

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "default_profile": self.default_profile,
            "profiles": {name: profile.to_dict() for name, profile in self.profiles.items()},
        }
        self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def _index(self, name: str) -> Optional[str]:
        wanted = name.lower()
        return next((key for key in self.profiles if key.lower() == wanted), None)

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Insert or replace a profile and persist. The first profile becomes the default."""
        if profile.auth_mode not in AUTH_MODES:
            raise ValueError(f"auth_mode must be one of {AUTH_MODES}, got {profile.auth_mode!r}")
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        self.profiles.pop(name)
        if name == self.default_profile:
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Case-insensitive lookup."""
        key = self._index(name)
        return self.profiles[key] if key else None

    def get_default(self) -> Optional[TenantProfile]:
        if self.default_profile in self.profiles:
            return self.profiles[self.default_profile]
        return next(iter(self.profiles.values()), None)

    def set_default(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return sorted(self.profiles.values(), key=lambda profile: profile.name)


def resolve_profile(
    profile_name: Optional[str] = None,
    path: Optional[Path] = None,
) -> Optional[TenantProfile]:
    """The named profile, or the default one when no name is given."""
    store = ProfileStore.load(path)
    return store.get(profile_name) if profile_name else store.get_default()
