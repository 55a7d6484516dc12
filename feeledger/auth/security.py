from typing import Dict

from jose import jwt

from feeledger.core.config import settings


def decode_access_token(token: str) -> Dict:
    """Decode and verify signature/expiry. Raises jose.JWTError on failure."""
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
    )
