from typing import List

from metrowatch.core.markers import format_datetime
from metrowatch.models.report_model import Comment, Report


def serialize_report(report: Report) -> dict:
    return {
        "id": report.id,
        "position": list(report.position) if report.position else None,
        "severity": report.severity,
        "category": report.category,
        "date": report.date,
        "time": report.time,
        "datetime": format_datetime(report.date, report.time),
        "status": report.status,
        "author": report.author,
        "description": report.description,
        "location": report.location,
        "image_url": report.image_url,
        "upvotes": report.upvote_count,
    }


def list_serialize_reports(reports) -> list:
    return [serialize_report(report) for report in reports]


def serialize_comment(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "text": comment.text,
        "timestamp": comment.timestamp,
        "author": comment.author,
    }


def serialize_report_detail(report: Report, comments: List[Comment]) -> dict:
    detail = serialize_report(report)
    detail["datetime"] = format_datetime(report.date, report.time, long_month=True)
    detail["comments"] = [serialize_comment(c) for c in comments]
    return detail
