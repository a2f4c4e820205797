"""OAuth2 token response model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyally._constants import DEFAULT_TOKEN_LIFETIME_S


class TokenResponse(BaseModel):
    """Body returned by the client-credentials token endpoint.

    Parameters
    ----------
    access_token : str
        Bearer token for API requests.
    expires_in : float
        Lifetime in seconds. Defaults to 1800 when the server omits it.
    token_type : str
        Token type, normally ``"Bearer"``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(min_length=1)
    expires_in: float = DEFAULT_TOKEN_LIFETIME_S
    token_type: str = "Bearer"

    @field_validator("expires_in", mode="before")
    @classmethod
    def _default_lifetime(cls, value: Any) -> Any:
        if value is None or value == "" or value == 0:
            return DEFAULT_TOKEN_LIFETIME_S
        return value
