from fastapi import HTTPException, Request

from metrowatch.core.live_view import LiveReportView


def get_live_view(request: Request) -> LiveReportView:
    live_view = getattr(request.app.state, "live_view", None)
    if live_view is None:
        raise HTTPException(status_code=503, detail="Live view is not running")
    return live_view
