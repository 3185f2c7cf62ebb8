"""
Local inspection of bearer tokens.

The client never holds the signing secrets, so claims are read without
signature verification and only used to decide when to refresh.
"""
import enum
import logging
import time
from datetime import datetime, timedelta
from typing import Optional

import jwt

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD = timedelta(minutes=5)


class TokenState(str, enum.Enum):
    VALID = "valid"
    NEAR_EXPIRY = "near_expiry"
    EXPIRED = "expired"


def decode_claims(token: str) -> Optional[dict]:
    """Decode the payload without verifying it. None if the token is malformed."""
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        logger.debug(f"Could not decode token: {e}")
        return None


def token_expiry(token: Optional[str]) -> Optional[datetime]:
    claims = decode_claims(token) if token else None
    exp = claims.get("exp") if claims else None
    if not isinstance(exp, (int, float)):
        return None
    return datetime.utcfromtimestamp(exp)


def classify_token(
    token: Optional[str],
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
    now: Optional[float] = None
) -> TokenState:
    """
    Classify a token by its ``exp`` claim.

    Tokens that are missing, undecodable or lack ``exp`` count as expired.
    """
    claims = decode_claims(token) if token else None
    exp = claims.get("exp") if claims else None
    if not isinstance(exp, (int, float)):
        return TokenState.EXPIRED

    remaining = exp - (time.time() if now is None else now)
    if remaining <= 0:
        return TokenState.EXPIRED
    if remaining <= lookahead.total_seconds():
        return TokenState.NEAR_EXPIRY
    return TokenState.VALID
