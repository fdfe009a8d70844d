from fastapi import APIRouter, Depends
from pydantic import BaseModel

from metrowatch.core.live_view import LiveReportView
from metrowatch.core.search import SEARCH_ERROR_MESSAGES, GeocodeSearchController
from metrowatch.routers.dependencies import get_live_view

router = APIRouter()


class SearchInput(BaseModel):
    text: str = ""


def serialize_search(search: GeocodeSearchController) -> dict:
    coordinates = search.last_coordinates
    return {
        "query": search.query,
        "in_flight": search.in_flight,
        "pending": search.timer_task is not None,
        "error": search.error.value if search.error else None,
        "error_message": SEARCH_ERROR_MESSAGES.get(search.error),
        "coordinates": list(coordinates) if coordinates else None,
    }


@router.get("/")
async def get_search(live_view: LiveReportView = Depends(get_live_view)):
    return serialize_search(live_view.search)


@router.post("/query")
async def search_query(body: SearchInput, live_view: LiveReportView = Depends(get_live_view)):
    live_view.search.on_query_change(body.text)
    return serialize_search(live_view.search)


@router.post("/submit")
async def search_submit(body: SearchInput, live_view: LiveReportView = Depends(get_live_view)):
    await live_view.search.on_submit(body.text)
    return serialize_search(live_view.search)
