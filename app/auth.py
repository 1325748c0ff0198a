"""
Organization context resolution
Supplies the organization scope and decrypted HouseCall Pro credential for a request
"""

import base64
import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from .config import HCP_ENCRYPTION_KEY, HCP_WEB_URL, SECRET_KEY
from .models import Organization

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Organization or credential missing - fatal before any remote call"""


def _build_cipher() -> Fernet:
    if HCP_ENCRYPTION_KEY:
        return Fernet(HCP_ENCRYPTION_KEY.encode())
    # Derive a valid 32-byte Fernet key from SECRET_KEY for dev setups
    digest = hashlib.sha256(SECRET_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


cipher_suite = _build_cipher()


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return cipher_suite.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token"""
    return cipher_suite.decrypt(encrypted_token.encode()).decode()


@dataclass(frozen=True)
class OrganizationContext:
    organization_id: str
    api_key: str
    web_base_url: str

    def job_url(self, remote_job_id: str) -> str:
        """Deep link to a job in the HouseCall Pro web app"""
        return f"{self.web_base_url.rstrip('/')}/pro/jobs/{remote_job_id}"


def resolve_organization_context(db: Session, organization_id: Optional[str]) -> OrganizationContext:
    """
    Resolve the organization and its HouseCall Pro credential.

    Raises:
        ConfigurationError: organization unknown or API key not configured
    """
    if not organization_id:
        raise ConfigurationError("Organization not specified")

    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if not org:
        logger.error(f"❌ Organization not found: {organization_id}")
        raise ConfigurationError("Organization not found")

    if not org.hcp_api_key:
        logger.error(f"❌ HouseCall Pro API key not configured for org {organization_id}")
        raise ConfigurationError("HouseCall Pro API not configured")

    try:
        api_key = decrypt_token(org.hcp_api_key)
    except InvalidToken:
        logger.error(f"❌ Stored HouseCall Pro API key for org {organization_id} cannot be decrypted")
        raise ConfigurationError("HouseCall Pro API not configured") from None

    return OrganizationContext(
        organization_id=org.id,
        api_key=api_key,
        web_base_url=org.hcp_web_url or HCP_WEB_URL,
    )


async def get_current_organization_id(
    x_organization_id: Optional[str] = Header(default=None),
) -> str:
    """
    Organization scope of the caller.
    Sign-in and profile lookup live in the dashboard; it forwards the
    active organization in the X-Organization-Id header.
    """
    if not x_organization_id:
        logger.warning("⚠️ Request without X-Organization-Id header")
        raise HTTPException(status_code=401, detail="Organization context required")
    return x_organization_id
