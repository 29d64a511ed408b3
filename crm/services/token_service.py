"""JWT access token validation (ES256).

Tokens are issued by the identity provider; this service only verifies
them.  With JWT_PUBLIC_KEY configured, that PEM key is the verification
key.  Without it (dev and test) an ephemeral key pair is generated on
import and ``create_access_token`` mints tokens the service will accept.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from crm.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "crm-identity"
AUDIENCE = "crm-api"
ACCESS_TOKEN_TTL_MIN = 15

_private_key = ec.generate_private_key(ec.SECP256R1())

if SETTINGS.jwt_public_key:
    _public_key = serialization.load_pem_public_key(SETTINGS.jwt_public_key.encode())
else:
    _public_key = _private_key.public_key()


def create_access_token(
    *,
    sub: str,
    email: str | None = None,
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
    extra_claims: dict | None = None,
) -> str:
    """Build and sign an access token with the ephemeral dev/test key."""
    now = datetime.now(UTC)
    payload = {
        **(extra_claims or {}),
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins algorithm to ES256 to prevent alg:none and alg-switching attacks.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
