from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from metrowatch.config import logger
from metrowatch.core.errors import StatusUpdateError
from metrowatch.core.filters import category_options, severity_options
from metrowatch.core.live_view import LiveReportView
from metrowatch.core.markers import build_markers
from metrowatch.models.filter_model import DATE_RANGE_OPTIONS, FilterCriteria
from metrowatch.models.report_model import STATUS_OPTIONS, StatusUpdate
from metrowatch.routers.dependencies import get_live_view
from metrowatch.schemas.report_schema import (
    list_serialize_reports,
    serialize_report,
    serialize_report_detail,
)

router = APIRouter()


def get_criteria(
    severity: Optional[str] = None,
    category: Optional[str] = None,
    date_range: Optional[str] = None,
    search: Optional[str] = None,
) -> FilterCriteria:
    try:
        return FilterCriteria(
            severity=severity, category=category, date_range=date_range, search=search
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False, include_input=False))


@router.get("/")
async def get_reports(
    criteria: FilterCriteria = Depends(get_criteria),
    live_view: LiveReportView = Depends(get_live_view),
):
    logger.info(
        f"[GET /reports] severity={criteria.severity}, category={criteria.category}, date_range={criteria.date_range.value}, search={criteria.search}"
    )
    reports = live_view.visible_reports(criteria)
    return {
        "message": "Reports retrieved successfully",
        "status": live_view.status.value,
        "total": len(live_view.reports),
        "data": list_serialize_reports(reports),
    }


@router.put("/criteria")
async def set_filter_criteria(
    criteria: FilterCriteria = Depends(get_criteria),
    live_view: LiveReportView = Depends(get_live_view),
):
    reports = live_view.set_criteria(criteria)
    logger.info(f"Filter criteria set, {len(reports)} reports visible")
    return {
        "message": "Filter criteria updated successfully",
        "data": {
            "severity": criteria.severity,
            "category": criteria.category,
            "date_range": criteria.date_range.value,
            "search": criteria.search,
            "visible": len(reports),
        },
    }


@router.get("/options")
async def get_filter_options(live_view: LiveReportView = Depends(get_live_view)):
    return {
        "severities": severity_options(live_view.reports),
        "categories": category_options(),
        "date_ranges": DATE_RANGE_OPTIONS,
        "statuses": STATUS_OPTIONS,
    }


@router.get("/markers")
async def get_markers(
    criteria: FilterCriteria = Depends(get_criteria),
    live_view: LiveReportView = Depends(get_live_view),
):
    markers = build_markers(live_view.visible_reports(criteria))
    return {"message": "Markers retrieved successfully", "data": markers}


@router.get("/{report_id}")
async def get_report(report_id: str, live_view: LiveReportView = Depends(get_live_view)):
    report = live_view.store.get(report_id)
    if report is None:
        logger.error(f"Report {report_id} not found in live view")
        raise HTTPException(status_code=404, detail="Report not found")
    comments = live_view.comments_for(report_id)
    return {
        "message": "Report retrieved successfully",
        "data": serialize_report_detail(report, comments),
    }


@router.patch("/{report_id}/status")
async def update_report_status(
    report_id: str,
    update: StatusUpdate,
    live_view: LiveReportView = Depends(get_live_view),
):
    if live_view.store.get(report_id) is None:
        raise HTTPException(status_code=404, detail="Report not found")
    try:
        report = await live_view.update_status(report_id, update.status, update.comment)
    except StatusUpdateError as e:
        logger.error(f"Status update for report {report_id} failed: {str(e)}")
        raise HTTPException(status_code=502, detail=f"Error updating report: {str(e)}")
    return {
        "message": "Report status updated successfully!",
        "data": serialize_report(report),
        "comments": [c.model_dump() for c in live_view.comments_for(report_id)],
    }
