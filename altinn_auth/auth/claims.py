"""
Token claim utilities.

This module handles:
- Reading ID token / access token payloads
- Locating RAR authorization_details in the token response
- Normalizing the organization numbers found in authorization_details

Payloads are decoded WITHOUT signature verification. The claims are shown to
the user and passed through; nothing here establishes trust in them.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from jose import JWTError, jwt

from altinn_auth.models import Organization

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^\d+$")


# =============================================================================
# Token Decoding
# =============================================================================

def decode_token_claims(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode a JWT payload without verifying its signature.

    Opaque (non-JWT) access tokens are common; they simply yield None.

    Args:
        token: JWT string

    Returns:
        Claims dict, or None if the token is missing or not a decodable JWT
    """
    if not token:
        return None

    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        logger.debug(f"Token payload could not be decoded: {e}")
        return None

    if not isinstance(claims, dict):
        return None
    return claims


# =============================================================================
# RAR authorization_details
# =============================================================================

def _details_from(source: Optional[Dict[str, Any]]) -> Optional[List[Dict[str, Any]]]:
    if not source or not isinstance(source, dict):
        return None

    value = source.get("authorization_details")
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        return None

    details = [item for item in value if isinstance(item, dict)]
    return details or None


def extract_authorization_details(
    id_token_claims: Optional[Dict[str, Any]],
    access_token_claims: Optional[Dict[str, Any]],
    token_response: Optional[Dict[str, Any]],
) -> Optional[List[Dict[str, Any]]]:
    """
    Locate RAR authorization_details.

    Sources are tried in order and the first non-empty one wins; sources are
    never merged:
        1. ID token claims
        2. Access token claims
        3. Token endpoint response body

    Returns:
        List of authorization detail objects, or None if no source has any
    """
    sources = (
        ("id_token", id_token_claims),
        ("access_token", access_token_claims),
        ("token_response", token_response),
    )

    for name, source in sources:
        details = _details_from(source)
        if details is not None:
            logger.info(
                f"Found RAR authorization_details in {name}",
                extra={"count": len(details)},
            )
            return details

    logger.info("No authorization_details found in ID token, access token, or token response")
    return None


# =============================================================================
# Organization Numbers
# =============================================================================

def _orgno_id(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("ID")
    if isinstance(value, str) and value:
        return value
    return None


def normalize_orgno(value: Any) -> Optional[str]:
    """
    Normalize an orgno claim to its digits.

    Accepted shapes:
        "123456789"
        "0192:123456789"            (scheme:value, last segment is used)
        {"ID": "0192:123456789"}

    Returns:
        The organization number, or None for any other shape
    """
    orgno = _orgno_id(value)
    if orgno is None:
        return None

    if ":" in orgno:
        return orgno.split(":")[-1]
    if _DIGITS.match(orgno):
        return orgno
    return None


def extract_organizations(
    authorization_details: Optional[List[Dict[str, Any]]],
) -> List[Organization]:
    """
    Collect organization numbers from authorization_details.

    Looks at each detail's own orgno and at every authorized party's orgno.
    """
    organizations: List[Organization] = []
    if not authorization_details or not isinstance(authorization_details, list):
        return organizations

    for detail in authorization_details:
        if not isinstance(detail, dict):
            continue

        orgno = normalize_orgno(detail.get("orgno"))
        if orgno:
            organizations.append(Organization(
                orgno=orgno,
                type=detail.get("type"),
                full_id=_orgno_id(detail.get("orgno")),
            ))

        parties = detail.get("authorized_parties")
        if not isinstance(parties, list):
            continue

        for party in parties:
            if not isinstance(party, dict):
                continue
            orgno = normalize_orgno(party.get("orgno"))
            if not orgno:
                continue
            organizations.append(Organization(
                orgno=orgno,
                type=detail.get("type"),
                resource=detail.get("resource") or party.get("resource"),
                resource_name=detail.get("resource_name") or party.get("name"),
                unit_type=party.get("unit_type"),
                full_id=_orgno_id(party.get("orgno")),
            ))

    return organizations
