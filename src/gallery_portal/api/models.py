"""Pydantic models for portal and admin request payloads."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from gallery_portal.domain.access import AccessType, GrantSettings
from gallery_portal.domain.packages import PackageStatus


class SelectionRequest(BaseModel):
    """Select one media item, optionally with a comment."""

    comment: str = ""


class SubmitSelectionRequest(BaseModel):
    """Replace the whole selection and submit it for review."""

    media_ids: list[str]
    name: str | None = None
    comment: str = ""


class CreatePackageRequest(BaseModel):
    name: str | None = None
    comments: str = ""
    submit: bool = False


class AccessCodeRequest(BaseModel):
    code: str = Field(min_length=1)


class ClientCreateRequest(BaseModel):
    email: str = Field(min_length=3)
    name: str = ""
    phone: str | None = None


class ClientUpdateRequest(BaseModel):
    email: str | None = None
    name: str | None = None
    phone: str | None = None


class GrantRequest(BaseModel):
    """Grant settings; omitted fields keep their stored values."""

    access_type: AccessType | None = None
    expiry_date: datetime | None = None
    selection_deadline: datetime | None = None
    max_selections: int | None = Field(default=None, ge=0)

    def to_settings(self) -> GrantSettings:
        """Keep only the fields present in the payload; naive times are UTC."""
        values: dict[str, object] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name == "access_type" and value is None:
                continue
            if isinstance(value, datetime) and value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            values[name] = value
        return GrantSettings(**values)  # type: ignore[arg-type]


class TransitionRequest(BaseModel):
    status: PackageStatus
    comments: str | None = None


class DownloadLinksRequest(BaseModel):
    expiration_hours: int | None = Field(default=None, gt=0)
