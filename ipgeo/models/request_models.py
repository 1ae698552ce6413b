from typing import Annotated

from pydantic import BaseModel, Field, StrictInt, field_validator

from ipgeo.validators import is_valid_ip


class GeolocationRequest(BaseModel):
    """Query parameters for a geolocation lookup.

    If `ip` is provided, the provider is asked about that explicit address and the
    lookup is recorded in the caller's search history. If `ip` is omitted or blank,
    the provider resolves the caller's own address and nothing is recorded.
    """

    ip: str | None = Field(
        default="",
        description="IPv4 or IPv6 address to look up. Leave empty to look up your own address.",
        examples=["8.8.8.8", "2001:4860:4860::8888"],
    )

    @field_validator("ip", mode="before")
    @classmethod
    def _validate_ip(cls, value: str | None) -> str | None:
        """Blank or missing values mean a self lookup; anything else must be an IP literal."""
        if value is None:
            return None

        value_str = str(value).strip()
        if not value_str:
            return None

        if not is_valid_ip(value_str):
            raise ValueError("The ip must be a valid IPv4 or IPv6 address.")

        return value_str


# Row ids are SQLite/Postgres signed 64-bit integers.
HistoryId = Annotated[StrictInt, Field(gt=0, le=2**63 - 1)]


class HistoryDeleteRequest(BaseModel):
    """Body of the bulk history delete endpoint."""

    ids: list[HistoryId] = Field(
        ...,
        min_length=1,
        description="Identifiers of the history records to delete.",
        examples=[[1, 2, 3]],
    )


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255, examples=["jane@example.com"])
    password: str = Field(..., min_length=1)
