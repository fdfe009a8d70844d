import asyncio
from typing import Any, Dict, List, Optional

from metrowatch.core.errors import StatusUpdateError


def make_row(report_id, **fields) -> Dict[str, Any]:
    row = {
        "report_id": report_id,
        "latitude": "14.55",
        "longitude": "121.02",
        "severity": "High",
        "category": "Traffic",
        "description": f"Report {report_id}",
        "location": "Makati",
        "date": "2024-01-01",
        "time": "08:30:00",
        "status": "pending",
        "user_id": "u1",
        "upvote": 2,
        "users": {"name": "Juan"},
    }
    row.update(fields)
    return row


class FakeBackend:
    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = rows if rows is not None else []
        self.fetch_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.subscriptions = []
        self.unsubscribed = 0
        self.updates = []

    def fetch_all(self):
        if self.fetch_error:
            raise self.fetch_error
        return self.rows

    def update_status(self, report_id, status):
        if self.update_error:
            raise self.update_error
        for row in self.rows:
            if row["report_id"] == report_id:
                updated = dict(row, status=status)
                self.updates.append((report_id, status))
                return updated
        raise StatusUpdateError(report_id, f"Report {report_id} not found")

    def subscribe(self, subscription):
        self.subscriptions.append(subscription)

        def unsubscribe():
            self.unsubscribed += 1

        return unsubscribe


class FakeGeocoder:
    """Geocoder whose responses are released by the test."""

    def __init__(self, results: Optional[Dict[str, Any]] = None):
        self.results = results or {}
        self.queries: List[str] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.closed = False

    def hold(self, query: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[query] = gate
        return gate

    async def lookup(self, query: str):
        self.queries.append(query)
        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()
        result = self.results.get(query)
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        self.closed = True


class FakeMap:
    def __init__(self):
        self.commands = []

    def set_view(self, coordinates, zoom):
        self.commands.append(("setView", tuple(coordinates), zoom))

    def fit_bounds(self, bounds, padding):
        self.commands.append(("fitBounds", tuple(bounds), tuple(padding)))


