from jose import jwt
from entitlement_gateway.core.config import Settings, settings as default_settings

def decode_token(token: str, settings: Settings = default_settings) -> dict:
    # Tokens are issued by the auth backend (sub = user id); we only verify them.
    # Returns the token payload if valid, raises JWTError if invalid.
    # Audience is not pinned: auth backends disagree on the aud claim.
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_alg],
        options={"verify_aud": False},
    )
