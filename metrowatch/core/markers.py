from datetime import datetime
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from metrowatch.config import logger
from metrowatch.models.report_model import Report

SEVERITY_COLORS = {
    "high": "#e53935",
    "medium": "#fb8c00",
    "low": "#1e88e5",
    "default": "#607d8b",
}

_MONTHS = [
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
]


def _div_icon(color: str) -> Dict:
    return {
        "className": "severity-icon",
        "html": (
            f'<div style="background:{color};border:2px solid #fff;'
            "box-shadow:0 0 0 1px rgba(0,0,0,.25);width:16px;height:16px;"
            'border-radius:50%;"></div>'
        ),
        "iconSize": [16, 16],
        "iconAnchor": [8, 8],
    }


@lru_cache(maxsize=None)
def severity_icons() -> Dict[str, Dict]:
    """Marker icons keyed by severity.

    Built once on first use; every later call returns the same mapping.
    """
    logger.info("Building severity marker icons")
    return {severity: _div_icon(color) for severity, color in SEVERITY_COLORS.items()}


def icon_for(severity: Optional[str]) -> Dict:
    icons = severity_icons()
    return icons.get((severity or "").lower(), icons["default"])


def format_datetime(date: Optional[str], time: Optional[str] = None, long_month: bool = False) -> str:
    """Format a report date (and optional time) as en-US display text.

    ``Jan 5, 2024, 3:07 PM`` by default, ``January 5, 2024 at 3:07 PM`` with
    ``long_month``. Unparsable input is returned as given.
    """
    if not date:
        return ""
    try:
        value = datetime.fromisoformat(f"{date}T{time}" if time else date)
    except (TypeError, ValueError):
        return date
    month = _MONTHS[value.month - 1]
    if not long_month:
        month = month[:3]
    text = f"{month} {value.day}, {value.year}"
    if not time:
        return text
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    separator = " at " if long_month else ", "
    return f"{text}{separator}{hour}:{value.minute:02d} {meridiem}"


def build_marker(report: Report) -> Optional[Dict]:
    position = report.position
    if position is None:
        return None
    return {
        "id": report.id,
        "position": list(position),
        "icon": icon_for(report.severity),
        "tooltip": {
            "title": report.title,
            "severity": report.severity or "Unknown",
        },
        "popup": {
            "image_url": report.image_url,
            "title": report.title,
            "datetime": format_datetime(report.date, report.time),
            "category": report.category or "N/A",
            "severity": report.severity or "N/A",
            "upvotes": report.upvote_count or 0,
        },
    }


def build_markers(reports: Iterable[Report]) -> List[Dict]:
    markers = []
    for report in reports:
        marker = build_marker(report)
        if marker is not None:
            markers.append(marker)
    return markers
