import math
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from metrowatch.models.filter_model import DateRange, FilterCriteria
from metrowatch.models.report_model import CATEGORIES, Report

_SECONDS_PER_DAY = 60 * 60 * 24

# Upper bound on the day difference for each range. "today" is exact.
_RANGE_LIMITS = {
    DateRange.WEEK: 7,
    DateRange.MONTH: 30,
}


def parse_report_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a report date as an aware UTC datetime, or None if unusable.

    Date-only values are midnight UTC; naive datetimes are taken as UTC.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if len(text) == 10:
            parsed = date.fromisoformat(text)
            return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_since(report_date: datetime, now: datetime) -> int:
    return math.floor((now - report_date).total_seconds() / _SECONDS_PER_DAY)


def matches_date_range(report: Report, date_range: DateRange, now: datetime) -> bool:
    if date_range == DateRange.NONE:
        return True
    report_date = parse_report_date(report.date)
    if report_date is None:
        return True
    diff = days_since(report_date, now)
    # Future dates give a negative difference and pass the week/month bounds.
    if date_range == DateRange.TODAY:
        return diff == 0
    return diff <= _RANGE_LIMITS[date_range]


def matches_search(report: Report, search: Optional[str]) -> bool:
    if not search or not search.strip():
        return True
    query = search.lower()
    fields = [
        report.location,
        report.description,
        report.category,
        report.severity,
        report.author,
    ]
    return any(query in value.lower() for value in fields if value)


def matches(report: Report, criteria: FilterCriteria, now: datetime) -> bool:
    if criteria.severity and (report.severity or "").lower() != criteria.severity.lower():
        return False
    if criteria.category and (report.category or "") != criteria.category:
        return False
    if not matches_date_range(report, criteria.date_range, now):
        return False
    return matches_search(report, criteria.search)


def filter_reports(
    reports: Iterable[Report],
    criteria: FilterCriteria,
    now: Optional[datetime] = None,
) -> List[Report]:
    """Return the reports satisfying every active criterion, in input order."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return [report for report in reports if matches(report, criteria, now)]


def severity_options(reports: Iterable[Report]) -> List[str]:
    seen = {"high", "medium", "low"}
    extra = sorted(
        {(r.severity or "").lower() for r in reports if r.severity} - seen
    )
    return ["high", "medium", "low"] + extra


def category_options() -> List[dict]:
    return [{"value": name, "icon": icon} for name, icon in CATEGORIES.items()]
