from typing import Optional

from pydantic import BaseModel


class AuthResponse(BaseModel):
    access_token: str
    expires_in: int
    token_type: str


class UserTokenResponse(BaseModel):
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    scope: list[str] | str = []
    token_type: str
