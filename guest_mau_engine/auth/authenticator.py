"""
Token acquisition for Microsoft Graph through MSAL.

Two modes are supported, matching the tenant profile's `auth_mode`:
  certificate  app-only client credentials from a base64-encoded PFX
  delegated    device-code sign-in by an administrator
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

import msal
from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from ..config import CERT_PASSWORD_ENV, REQUIRED_PERMISSIONS, AuthConfig

logger = logging.getLogger("guest_mau_engine.auth")

GRAPH_DEFAULT_SCOPE = ["https://graph.microsoft.com/.default"]
LOGIN_AUTHORITY = "https://login.microsoftonline.com"


class AuthenticationError(Exception):
    """Token acquisition or credential loading failed."""
    pass


def _authority(tenant_id: str) -> str:
    return f"{LOGIN_AUTHORITY}/{tenant_id}"


def _token_or_raise(result: dict, flow: str) -> str:
    if "access_token" in result:
        logger.info(f"{flow} token acquired.")
        return result["access_token"]
    reason = result.get("error_description") or result.get("error") or "no reason given"
    raise AuthenticationError(f"{flow} authentication failed: {reason}")


def load_pfx_credential(path: str, password: str) -> dict:
    """
    Read a base64-encoded PFX and return the client_credential mapping MSAL
    takes for certificate auth (PEM private key plus SHA-1 thumbprint).
    """
    try:
        with open(path, "r", encoding="ascii") as fh:
            pfx = base64.b64decode(fh.read().strip())
        key, cert, _ = pkcs12.load_key_and_certificates(
            pfx, password.encode("utf-8") if password else None
        )
    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {path}")
    except (OSError, ValueError) as e:
        raise AuthenticationError(f"Failed to load certificate {path}: {e}")

    if key is None or cert is None:
        raise AuthenticationError(f"Certificate file {path} has no key or certificate.")

    thumbprint = cert.fingerprint(SHA1()).hex()
    logger.info(f"Loaded certificate {thumbprint} from {path}")
    return {
        "thumbprint": thumbprint,
        "private_key": key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ).decode("utf-8"),
    }


class Authenticator:
    """
    Acquires Graph tokens for the configured mode.

    `refresh_token()` always goes back to Entra ID instead of MSAL's cache, so
    permissions consented mid-run show up in the new token's roles.
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._client_credential: Optional[dict] = None
        self._public_app: Optional[msal.PublicClientApplication] = None

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        return REQUIRED_PERMISSIONS

    async def acquire_token(self) -> str:
        mode = self.config.mode
        if mode == "certificate":
            return self._acquire_certificate_token()
        if mode == "delegated":
            return self._acquire_delegated_token()
        raise AuthenticationError(f"Unsupported auth mode {mode!r}; use certificate or delegated")

    async def refresh_token(self) -> str:
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()

        app = self._public_app
        accounts = app.get_accounts() if app is not None else []
        if accounts:
            result = app.acquire_token_silent(
                self.config.delegated.scopes, account=accounts[0], force_refresh=True
            )
            if result and "access_token" in result:
                return result["access_token"]
        return self._acquire_delegated_token()

    def _load_certificate(self) -> dict:
        settings = self.config.certificate
        password = (
            settings.certificate_password
            or os.environ.get(CERT_PASSWORD_ENV, "")
            or getpass.getpass(f"Password for {settings.certificate_path}: ")
        )
        return load_pfx_credential(settings.certificate_path, password)

    def _acquire_certificate_token(self) -> str:
        settings = self.config.certificate
        if not settings:
            raise AuthenticationError("Certificate mode selected but no certificate settings given.")

        if self._client_credential is None:
            self._client_credential = self._load_certificate()

        # Fresh application per call: its token cache starts empty.
        app = msal.ConfidentialClientApplication(
            client_id=settings.client_id,
            authority=_authority(settings.tenant_id),
            client_credential=self._client_credential,
        )
        return _token_or_raise(
            app.acquire_token_for_client(scopes=GRAPH_DEFAULT_SCOPE), "Certificate"
        )

    def _acquire_delegated_token(self) -> str:
        settings = self.config.delegated
        if not settings:
            raise AuthenticationError("Delegated mode selected but no tenant/client given.")

        if self._public_app is None:
            self._public_app = msal.PublicClientApplication(
                client_id=settings.client_id,
                authority=_authority(settings.tenant_id),
            )

        flow = self._public_app.initiate_device_flow(scopes=settings.scopes)
        if "user_code" not in flow:
            reason = flow.get("error_description") or flow.get("error") or "no reason given"
            raise AuthenticationError(f"Could not start device-code sign-in: {reason}")

        print(f"\n{'-' * 60}")
        print(f"  Sign in at {flow['verification_uri']} with code {flow['user_code']}")
        print(f"{'-' * 60}\n")

        return _token_or_raise(
            self._public_app.acquire_token_by_device_flow(flow), "Delegated"
        )
