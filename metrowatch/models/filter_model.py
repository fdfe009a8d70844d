from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class DateRange(str, Enum):
    NONE = "none"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


DATE_RANGE_OPTIONS = [
    {"value": DateRange.TODAY.value, "label": "Today"},
    {"value": DateRange.WEEK.value, "label": "Past Week"},
    {"value": DateRange.MONTH.value, "label": "Past Month"},
]


class FilterCriteria(BaseModel):
    severity: Optional[str] = None
    category: Optional[str] = None
    date_range: DateRange = DateRange.NONE
    search: Optional[str] = None

    @field_validator("date_range", mode="before")
    @classmethod
    def empty_date_range(cls, value):
        if value is None or value == "":
            return DateRange.NONE
        return value

    @field_validator("severity", "category", "search", mode="before")
    @classmethod
    def empty_to_none(cls, value):
        if value == "":
            return None
        return value
