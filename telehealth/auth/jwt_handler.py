import jwt

from telehealth.core import config


def decode_access_token(token: str) -> dict:
    """Verify a bearer token issued by the auth provider and return its claims."""
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        audience=config.JWT_AUDIENCE,
    )
