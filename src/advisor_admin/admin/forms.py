"""Bound form models validated before a mutation intent is built.

Field names match the remote record keys (camelCase) so a validated form
dumps straight into an intent body. Unknown keys are passed through
untouched; the remote is the final authority on extra fields.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from src.advisor_admin.sync.fields import (
    format_display_date,
    parse_amount,
    slugify,
    state_code,
)
from src.advisor_admin.sync.registry import get_collection_config
from src.advisor_admin.sync.schemas import CollectionId, Record

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _today() -> str:
    return format_display_date(datetime.now(timezone.utc))


class _Form(BaseModel):
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)


class _SluggedForm(_Form):
    """Fills ``slug`` from ``title`` (or ``firm``) when left blank."""

    @model_validator(mode="before")
    @classmethod
    def _default_slug(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("slug"):
            source = data.get("title") or data.get("firm")
            if isinstance(source, str) and source.strip():
                data = {**data, "slug": slugify(source)}
        return data


# ── Firm Data ───────────────────────────────────────────────────────────────


class FirmDealForm(_Form):
    firm: str = Field(min_length=1)
    upfrontMin: float | None = Field(default=None, ge=0)
    upfrontMax: float | None = Field(default=None, ge=0)
    backendMin: float | None = Field(default=None, ge=0)
    backendMax: float | None = Field(default=None, ge=0)
    totalDealMin: float | None = Field(default=None, ge=0)
    totalDealMax: float | None = Field(default=None, ge=0)
    notes: str = ""

    @model_validator(mode="after")
    def _check_ranges(self) -> FirmDealForm:
        for prefix in ("upfront", "backend", "totalDeal"):
            low, high = getattr(self, f"{prefix}Min"), getattr(self, f"{prefix}Max")
            if low is not None and high is not None and low > high:
                raise ValueError(f"{prefix}Min must not exceed {prefix}Max")
        return self


class FirmParameterForm(_Form):
    firm: str = Field(min_length=1)
    paramName: str = Field(min_length=1)
    paramValue: float | str
    notes: str = ""


class FirmProfileForm(_SluggedForm):
    firm: str = Field(min_length=1)
    ceo: str = ""
    bio: str = ""
    logoUrl: str = ""
    founded: str = ""
    headquarters: str = ""
    category: str = ""
    slug: str = ""


# ── Users ───────────────────────────────────────────────────────────────────


class UserForm(_Form):
    username: str = Field(min_length=1)
    fullName: str = ""
    email: str = Field(pattern=_EMAIL_PATTERN)
    isAdmin: bool = False
    emailVerified: bool = False
    totpEnabled: bool = False
    state: str = ""


# ── Content ─────────────────────────────────────────────────────────────────


class BlogPostForm(_SluggedForm):
    title: str = Field(min_length=1)
    slug: str = ""
    excerpt: str = ""
    content: str = ""
    author: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    published: bool = False
    featured: bool = False
    date: str = Field(default_factory=_today)


class NewsArticleForm(_SluggedForm):
    title: str = Field(min_length=1)
    slug: str = ""
    content: str = ""
    excerpt: str = ""
    source: str = ""
    sourceUrl: str | None = None
    category: str = ""
    imageUrl: str | None = None
    published: bool = False
    featured: bool = False
    date: str = Field(default_factory=_today)


# ── Marketplace ─────────────────────────────────────────────────────────────


class PracticeListingForm(_Form):
    title: str = Field(min_length=1)
    location: str
    aum: str
    revenue: str
    price: str
    status: Literal["Active", "Pending", "Sold"] = "Active"
    type: str = ""
    description: str = ""
    highlighted: bool = False
    date: str = Field(default_factory=_today)

    @field_validator("location")
    @classmethod
    def _location_has_state(cls, value: str) -> str:
        if state_code(value) is None:
            raise ValueError("location must look like 'City, ST'")
        return value

    @field_validator("aum", "revenue", "price")
    @classmethod
    def _parsable_amount(cls, value: str) -> str:
        if parse_amount(value) is None:
            raise ValueError("must be a dollar amount such as $135M or $850K")
        return value


FORMS: dict[CollectionId, type[_Form]] = {
    CollectionId.FIRM_DEALS: FirmDealForm,
    CollectionId.FIRM_PARAMETERS: FirmParameterForm,
    CollectionId.FIRM_PROFILES: FirmProfileForm,
    CollectionId.ADMIN_USERS: UserForm,
    CollectionId.BLOG_POSTS: BlogPostForm,
    CollectionId.NEWS_ARTICLES: NewsArticleForm,
    CollectionId.PRACTICE_LISTINGS: PracticeListingForm,
}


def validate_create(collection_id: str | CollectionId, payload: dict[str, Any]) -> Record:
    """Validate a create payload and return the normalized field map.

    Raises:
        pydantic.ValidationError: If the payload is invalid.
    """
    form = FORMS[get_collection_config(collection_id).collection_id]
    return form.model_validate(payload).model_dump()


def validate_update(
    collection_id: str | CollectionId,
    current: Record,
    changes: dict[str, Any],
) -> Record:
    """Validate ``changes`` merged over ``current``; return only the changed fields.

    Errors on fields the operator did not touch are ignored, so a legacy
    record with e.g. an unparsable ``aum`` can still have its status changed.

    Raises:
        pydantic.ValidationError: If a changed field (or a cross-field rule)
            is invalid.
    """
    form = FORMS[get_collection_config(collection_id).collection_id]
    try:
        validated = form.model_validate({**current, **changes}).model_dump()
    except ValidationError as exc:
        if any(not err["loc"] or err["loc"][0] in changes for err in exc.errors()):
            raise
        return dict(changes)
    return {name: validated.get(name, value) for name, value in changes.items()}
