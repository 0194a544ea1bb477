import math
from typing import Any, Literal

from pydantic import BaseModel, field_validator


def is_finite_number(value: Any) -> bool:
    # bool is an int subclass but never a valid sensor value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large for a float
        return False


class ReadingIn(BaseModel):
    """Payload posted by the device."""

    temperature: float
    humidity: float

    @field_validator("temperature", "humidity", mode="before")
    @classmethod
    def _must_be_number(cls, v: Any) -> Any:
        if not is_finite_number(v):
            raise ValueError("must be a finite number")
        return v


class Reading(BaseModel):
    id: int
    temperature: float
    humidity: float
    created_at: str


class ReadingMessage(BaseModel):
    type: Literal["latest-reading", "new-reading"]
    data: Reading


def validate_reading(data) -> ReadingIn:
    """Validate and return a ReadingIn pydantic model."""
    return ReadingIn.model_validate(data)
