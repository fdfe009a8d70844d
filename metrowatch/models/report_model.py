import math
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Tuple

from bson import ObjectId as _ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ReportStatus = Literal["pending", "not resolved", "ongoing", "resolved", "dismissed"]

STATUS_OPTIONS = [
    {"value": "pending", "label": "Pending"},
    {"value": "not resolved", "label": "Not Resolved"},
    {"value": "ongoing", "label": "Ongoing"},
    {"value": "resolved", "label": "Resolved"},
    {"value": "dismissed", "label": "Dismissed"},
]

STATUS_VALUES = [option["value"] for option in STATUS_OPTIONS]

# "Others" is the catch-all.
CATEGORIES = {
    "Garbage": "🗑️",
    "Traffic": "🚦",
    "Flooding": "🌊",
    "Vandalism": "⚠️",
    "Noise Pollution": "🔊",
    "Road Damage": "🕳️",
    "Illegal Parking": "🚗",
    "Street Lighting": "💡",
    "Stray Animals": "🐶",
    "Others": "📋",
}


def normalize_status(value: Any) -> str:
    if value is None or value == "":
        return "pending"
    status = str(value).strip().lower().replace("_", " ").replace("-", " ")
    status = " ".join(status.split())
    if status not in STATUS_VALUES:
        raise ValueError(f"Unknown report status: {value!r}")
    return status


def _parse_coordinate(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class Report(BaseModel):
    """A single incident report as held by the live view.

    Rows from the backend use their column names (``report_id``, ``url``,
    ``upvote``, ``users.name``); ``from_row`` maps them onto this model and
    is the only way records enter the store.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., alias="report_id", min_length=1)
    latitude: Optional[Any] = None
    longitude: Optional[Any] = None
    severity: Optional[str] = None
    category: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    status: ReportStatus = "pending"
    user_id: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="url")
    upvote_count: int = Field(default=0, alias="upvote")

    @model_validator(mode="before")
    @classmethod
    def flatten_row(cls, data: Any):
        if not isinstance(data, dict):
            raise ValueError("Report row must be a mapping")
        row = dict(data)
        if row.get("report_id") in (None, ""):
            for key in ("id", "_id"):
                if row.get(key) not in (None, ""):
                    row["report_id"] = row[key]
                    break
        users = row.pop("users", None)
        if row.get("author") is None and isinstance(users, dict):
            row["author"] = users.get("name")
        if row.get("upvote") is None and row.get("upvote_count") is None:
            row["upvote"] = 0
        return row

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_identifier(cls, value):
        if isinstance(value, _ObjectId):
            return str(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, value):
        return normalize_status(value)

    @field_validator("date", "time", mode="before")
    @classmethod
    def coerce_date_parts(cls, value):
        if isinstance(value, datetime):
            return value.isoformat()
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("upvote_count", mode="before")
    @classmethod
    def coerce_upvotes(cls, value):
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    @classmethod
    def from_row(cls, row: Any) -> "Report":
        return cls.model_validate(row)

    @property
    def position(self) -> Optional[Tuple[float, float]]:
        lat = _parse_coordinate(self.latitude)
        lng = _parse_coordinate(self.longitude)
        if lat is None or lng is None:
            return None
        return (lat, lng)

    @property
    def title(self) -> str:
        return self.description or self.location or "Report"


class Comment(BaseModel):
    """A note attached locally to a report when its status is changed.

    Comments are not sent to the backend and do not survive a restart.
    """

    id: int
    text: str
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    author: str = "Current User"


class StatusUpdate(BaseModel):
    status: ReportStatus
    comment: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, value):
        if value is None or value == "":
            raise ValueError("Status is required")
        return normalize_status(value)
