"""Contact payload and response models."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ContactPayload(BaseModel):
    """One uploaded contact row.

    Uploads come from spreadsheets with inconsistent headers, so the
    camelCase and legacy column names are accepted alongside the canonical
    ones. Blank strings are treated as missing so they never overwrite an
    existing value on merge.
    """

    email: str
    name: str | None = None
    company_name: str | None = Field(
        default=None, validation_alias=AliasChoices("company_name", "companyName")
    )
    role: str | None = Field(default=None, validation_alias=AliasChoices("role", "position"))
    recruiter_name: str | None = Field(
        default=None, validation_alias=AliasChoices("recruiter_name", "recruiterName")
    )
    additional_info: dict[str, Any] | None = None

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @field_validator("email")
    @classmethod
    def require_email(cls, v: str) -> str:
        # Merge key: matched exactly as uploaded
        if not v:
            raise ValueError("Email is required")
        return v

    @field_validator("name", "company_name", "role", "recruiter_name", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ContactOut(BaseModel):
    """Contact as returned by the API."""

    id: int
    email: str
    name: str | None = None
    company_name: str | None = None
    role: str | None = None
    recruiter_name: str | None = None
    additional_info: dict[str, Any] | None = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
