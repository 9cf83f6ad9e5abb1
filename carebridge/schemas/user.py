from typing import Optional

from pydantic import BaseModel, ConfigDict


class Principal(BaseModel):
    """Authenticated caller resolved from a bearer token."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: str
    display_name: Optional[str] = None


class TokenPayload(BaseModel):

    sub: str
    exp: int
