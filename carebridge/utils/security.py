from typing import Any, Dict

import jwt

from carebridge.config.settings import Config


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify an access token; raises jwt.InvalidTokenError on failure."""
    return jwt.decode(
        token,
        Config.JWT_SECRET,
        algorithms=[Config.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
