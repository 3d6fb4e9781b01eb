"""
Multi-Tenant Service: Organizations and API Tokens

WHY: Every core operation takes org_id as an explicit parameter. This
module is the only place that turns a client credential into that org_id;
nothing downstream reads tenant context from request globals.

SECURITY INVARIANTS:
1. A bearer token resolves to exactly one active organization
2. Tokens are stored hashed (SHA-256); plaintext is returned once at issue time
3. Lookups of tenant-owned rows always filter by org_id; a row owned by
   another tenant is reported as not found, never as forbidden

USAGE:
    context = resolve_token(bearer_token)
    booking_service.issue_booking(booking_id, context.org_id, actor=context.actor)
"""

import hashlib
import secrets
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError
from ..models import Organization, ApiToken
from ..validation import ValidationError
from rentdesk.time_utils import utcnow


@dataclass
class TokenContext:
    """Tenant + actor resolved from a bearer token."""
    org_id: int
    actor: str
    token_id: int


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 is sufficient for high-entropy random tokens (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_organization(name: str, code: str | None = None) -> Organization:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Organization name is required")

    if code:
        existing = db.session.query(Organization).filter_by(code=code).first()
        if existing:
            raise ValidationError(f"Organization with code '{code}' already exists")

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    return org


def require_active_org(org_id: int) -> Organization:
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org or not org.is_active:
        raise NotFoundError("Organization not found")
    return org


def issue_token(org_id: int, label: str) -> tuple[ApiToken, str]:
    """
    Issue a new API token for an organization.

    Returns:
        (ApiToken record, plaintext token). Only the hash is persisted.
    """
    require_active_org(org_id)

    label = (label or "").strip()
    if not label:
        raise ValidationError("Token label is required")

    plaintext = generate_token()
    token = ApiToken(
        org_id=org_id,
        label=label,
        token_hash=hash_token(plaintext),
        is_active=True,
    )
    db.session.add(token)
    db.session.commit()

    current_app.logger.info("Issued API token id=%s org_id=%s label=%s", token.id, org_id, label)
    return token, plaintext


def resolve_token(plaintext: str) -> TokenContext | None:
    """
    Validate a bearer token.

    Returns None for unknown, revoked, or deactivated-organization tokens.
    """
    if not plaintext:
        return None

    token = db.session.query(ApiToken).filter_by(token_hash=hash_token(plaintext)).first()
    if not token or not token.is_active:
        return None

    org = db.session.query(Organization).filter_by(id=token.org_id).first()
    if not org or not org.is_active:
        current_app.logger.warning("Token id=%s used for inactive org_id=%s", token.id, token.org_id)
        return None

    token.last_used_at = utcnow()
    db.session.commit()

    return TokenContext(org_id=token.org_id, actor=token.label, token_id=token.id)


def revoke_token(token_id: int, org_id: int) -> ApiToken:
    token = db.session.query(ApiToken).filter_by(id=token_id, org_id=org_id).first()
    if not token:
        raise NotFoundError("Token not found")

    token.is_active = False
    token.revoked_at = utcnow()
    db.session.commit()
    return token
