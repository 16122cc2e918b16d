"""Plan catalog schemas."""

from datetime import datetime

from pydantic import BaseModel


class PlanResponse(BaseModel):
    """Plan response."""

    id: int
    advisor_id: int
    name: str
    description: str
    price: float
    data_allowance: str
    minutes_allowance: str
    sms_allowance: str
    speed_4g: str
    speed_5g: str | None = None
    free_messaging: bool
    free_social_media: bool
    international_calling: bool
    roaming: bool
    segment: str
    is_active: bool
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PlanSummary(BaseModel):
    """Plan fields embedded in a contract."""

    id: int
    name: str
    price: float
    segment: str
    data_allowance: str
    image_url: str | None = None

    class Config:
        from_attributes = True
