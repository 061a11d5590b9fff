"""Token issuance schemas."""

from typing import Optional

from pydantic import BaseModel


class TokenResponse(BaseModel):
    token: str
    type: str
    expires_in: Optional[int] = None
