"""
Authentication module — certificate-based app-only or delegated device-code
auth against the Microsoft Identity Platform, via MSAL.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption
from cryptography.hazmat.primitives.hashes import SHA1
import msal

from ..config import AuthConfig

logger = logging.getLogger("m365_domain_remediation.auth")

# Default scopes for app-only auth
APP_SCOPES = ["https://graph.microsoft.com/.default"]
EXCHANGE_APP_SCOPES = ["https://outlook.office365.com/.default"]

# Delegated scope for the Exchange admin API (admin role still required)
EXCHANGE_DELEGATED_SCOPES = ["https://outlook.office365.com/Exchange.Manage"]

CERT_PASSWORD_ENV = "M365_CERT_PASSWORD"


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


@dataclass(frozen=True)
class CertificateCredential:
    thumbprint: str
    private_key_pem: str

    def to_msal(self) -> dict:
        return {"thumbprint": self.thumbprint, "private_key": self.private_key_pem}


def load_certificate_credential(cert_path: str, password: str = "") -> CertificateCredential:
    """Load a base64-encoded PFX file into an MSAL client credential."""
    try:
        with open(cert_path, "r") as f:
            cert_bytes = base64.b64decode(f.read().strip())
    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {cert_path}.")
    except ValueError as e:
        raise AuthenticationError(f"Certificate file is not valid base64: {e}")

    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            cert_bytes, password.encode("utf-8") if password else None
        )
    except ValueError as e:
        raise AuthenticationError(f"Failed to load certificate: {e}")

    if private_key is None or certificate is None:
        raise AuthenticationError("PFX must contain both a certificate and its private key.")

    private_key_pem = private_key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    ).decode("utf-8")
    thumbprint = certificate.fingerprint(SHA1()).hex()
    return CertificateCredential(thumbprint=thumbprint, private_key_pem=private_key_pem)


class Authenticator:
    """
    Handles MSAL-based authentication for Microsoft Graph and the
    Exchange Online admin API.
    Supports:
      - Certificate-based app-only authentication
      - Delegated interactive authentication (device code flow)
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._app = None

    async def acquire_token(self) -> str:
        """Acquire a Graph access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token(APP_SCOPES)
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    async def acquire_exchange_token(self) -> str:
        """Acquire an Exchange Online access token for the same tenant and app."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token(EXCHANGE_APP_SCOPES)
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token(EXCHANGE_DELEGATED_SCOPES)
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    @property
    def tenant_id(self) -> str:
        settings = self.config.certificate if self.config.mode == "certificate" else self.config.delegated
        if not settings:
            raise AuthenticationError(f"{self.config.mode} auth config not provided.")
        return settings.tenant_id

    def _acquire_certificate_token(self, scopes: list[str]) -> str:
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        if self._app is None:
            logger.info("Authenticating with certificate-based app credentials...")

            password = cert_config.certificate_password or os.environ.get(CERT_PASSWORD_ENV, "")
            if not password:
                password = getpass.getpass("Enter the certificate password: ")

            credential = load_certificate_credential(cert_config.certificate_path, password)
            logger.info(f"Certificate loaded. Thumbprint: {credential.thumbprint}")

            self._app = msal.ConfidentialClientApplication(
                client_id=cert_config.client_id,
                authority=f"https://login.microsoftonline.com/{cert_config.tenant_id}",
                client_credential=credential.to_msal(),
            )
        result = self._app.acquire_token_for_client(scopes=scopes)
        return self._token_from(result, "Certificate")

    def _acquire_delegated_token(self, scopes: Optional[list[str]] = None) -> str:
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")
        scopes = scopes or deleg_config.scopes

        if self._app is None:
            self._app = msal.PublicClientApplication(
                client_id=deleg_config.client_id,
                authority=f"https://login.microsoftonline.com/{deleg_config.tenant_id}",
            )

        # A signed-in account can get tokens for other resources without a new prompt
        accounts = self._app.get_accounts()
        if accounts:
            result = self._app.acquire_token_silent(scopes, account=accounts[0])
            if result:
                return self._token_from(result, "Delegated")

        logger.info("Initiating device code authentication flow...")
        flow = self._app.initiate_device_flow(scopes=scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        result = self._app.acquire_token_by_device_flow(flow)
        return self._token_from(result, "Delegated")

    def _token_from(self, result: dict, mode: str) -> str:
        if "access_token" in result:
            logger.info(f"{mode} authentication successful.")
            return result["access_token"]
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{mode} auth failed: {error}")
