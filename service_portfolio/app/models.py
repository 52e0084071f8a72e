"""
Request models for the portfolio write endpoints.
"""

import re
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from shared.errors import ValidationError

MAX_IMAGES = 10
MAX_SETTING_KEY_LENGTH = 255
MAX_SETTING_VALUE_LENGTH = 10000

DEFAULT_POST_CATEGORY = "Jurnal & Catatan"
DEFAULT_POST_STATUS = "draft"
DEFAULT_EXPERIENCE_TYPE = "work"
DEFAULT_PROJECT_CATEGORY = "Web Development"


def require_text(value: Optional[str], field_name: str) -> str:
    """Reject missing or blank required text fields."""
    if not value or not value.strip():
        raise ValidationError(f"{field_name.title()} is required", {"field": field_name})
    return value


def slugify(title: str) -> str:
    return re.sub(r"\s+", "-", title.lower())


class PostRequest(BaseModel):
    """Body for creating or replacing a post."""
    title: Optional[str] = None
    slug: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None
    cover_image_url: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    reading_time: Optional[int] = Field(None, ge=0)

    def to_columns(self, creating: bool = True) -> Dict[str, Any]:
        """Column values for the store.

        Create-time defaults are skipped on update; the store keeps the
        current value of a defaulted column when the update leaves it unset.
        """
        title = require_text(self.title, "title")
        columns = self.model_dump()
        columns["content"] = self.content or ""
        if creating:
            columns["slug"] = self.slug or slugify(title)
            columns["category"] = self.category or DEFAULT_POST_CATEGORY
            columns["status"] = self.status or DEFAULT_POST_STATUS
            columns["reading_time"] = self.reading_time or 1
        return columns


class ExperienceRequest(BaseModel):
    """Body for creating or replacing an experience."""
    title: Optional[str] = None
    organization: Optional[str] = None
    period: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    image: Optional[str] = None
    images: Optional[List[str]] = None
    start_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)

    def to_columns(self, creating: bool = True) -> Dict[str, Any]:
        require_text(self.title, "title")
        columns = self.model_dump()
        if self.images is not None:
            columns["images"] = self.images[:MAX_IMAGES]
        else:
            columns["images"] = [self.image] if self.image else []
        columns["image"] = self.image or None
        if creating:
            columns["type"] = self.type or DEFAULT_EXPERIENCE_TYPE
        return columns


class ProjectRequest(BaseModel):
    """Body for creating or replacing a project."""
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    link: Optional[str] = None
    category: Optional[str] = None

    def to_columns(self, creating: bool = True) -> Dict[str, Any]:
        require_text(self.title, "title")
        columns = self.model_dump()
        if creating:
            columns["category"] = self.category or DEFAULT_PROJECT_CATEGORY
        return columns


class CertificationRequest(BaseModel):
    """Body for creating or replacing a certification.

    Accepts both the camelCase names the dashboard sends and the column
    names. Month-precision dates (``YYYY-MM``) are stored as the first day
    of that month.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    organization: Optional[str] = None
    issue_date: Optional[date] = Field(None, validation_alias=AliasChoices("issueDate", "issue_date"))
    expiry_date: Optional[date] = Field(None, validation_alias=AliasChoices("expiryDate", "expiry_date"))
    credential_id: Optional[str] = Field(None, validation_alias=AliasChoices("credentialId", "credential_id"))
    credential_url: Optional[str] = Field(None, validation_alias=AliasChoices("credentialUrl", "credential_url"))
    image: Optional[str] = None
    skills: List[str] = Field(default_factory=list)

    @field_validator("issue_date", "expiry_date", mode="before")
    @classmethod
    def expand_month(cls, value: Any) -> Any:
        if value == "":
            return None
        if isinstance(value, str) and len(value) == 7:
            return f"{value}-01"
        return value

    def to_columns(self, creating: bool = True) -> Dict[str, Any]:
        require_text(self.name, "name")
        return self.model_dump()


class SettingsBulkRequest(BaseModel):
    """Body for ``POST /api/settings/bulk``."""
    settings: Optional[Dict[str, Any]] = None

    def normalized(self) -> Dict[str, str]:
        if self.settings is None:
            raise ValidationError("Settings object is required")
        return {
            str(key)[:MAX_SETTING_KEY_LENGTH]: ("" if value is None else str(value))[:MAX_SETTING_VALUE_LENGTH]
            for key, value in self.settings.items()
        }
