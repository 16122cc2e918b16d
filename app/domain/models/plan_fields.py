"""Validated plan fields for catalog writes."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator

from app.persistence.models.plan import PLAN_SEGMENTS, SEGMENT_BASIC, UNLIMITED


def _normalize_allowance(value: str) -> str:
    if value.strip().lower() in ("unlimited", "ilimitado", "ilimitados"):
        return UNLIMITED
    return value.strip()


def _require_text(value: str | None, label: str) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


class PlanUpdateFields(BaseModel):
    """Partial plan update; only supplied fields are applied."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str | None = None
    description: str | None = None
    price: Decimal | None = None
    data_allowance: str | None = None
    minutes_allowance: str | None = None
    sms_allowance: str | None = None
    speed_4g: str | None = None
    speed_5g: str | None = None
    free_messaging: bool | None = None
    free_social_media: bool | None = None
    international_calling: bool | None = None
    roaming: bool | None = None
    segment: str | None = None
    is_active: bool | None = None

    @field_validator("name", "description", "speed_4g")
    @classmethod
    def _non_empty(cls, value: str | None, info) -> str | None:
        return _require_text(value, info.field_name.replace("_", " "))

    @field_validator("data_allowance", "minutes_allowance", "sms_allowance")
    @classmethod
    def _allowance(cls, value: str | None, info) -> str | None:
        value = _require_text(value, info.field_name.replace("_", " "))
        return _normalize_allowance(value) if value is not None else None

    @field_validator("speed_5g")
    @classmethod
    def _optional_text(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("price")
    @classmethod
    def _positive_price(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and (not value.is_finite() or value <= 0):
            raise ValueError("price must be a positive number")
        return value

    @field_validator("segment")
    @classmethod
    def _known_segment(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.lower()
        if value not in PLAN_SEGMENTS:
            raise ValueError(f"segment must be one of: {', '.join(PLAN_SEGMENTS)}")
        return value


class PlanFields(PlanUpdateFields):
    """Full set of fields required to create a plan."""

    name: str
    description: str
    price: Decimal
    data_allowance: str
    minutes_allowance: str
    sms_allowance: str
    speed_4g: str
    free_messaging: bool = False
    free_social_media: bool = False
    international_calling: bool = False
    roaming: bool = False
    segment: str = SEGMENT_BASIC
    is_active: bool = True
