import asyncio
from collections import deque
from enum import Enum
from typing import Any, Dict, List, Optional

from pubsub import pub

from metrowatch.config import Settings, logger
from metrowatch.core.errors import StatusUpdateError
from metrowatch.core.filters import filter_reports
from metrowatch.core.reconciler import ChangeReconciler
from metrowatch.core.search import GeocodeSearchController
from metrowatch.core.store import REPORT_DROPPED, REPORTS_CHANGED, ReportStore
from metrowatch.core.subscription import ChangeSubscription
from metrowatch.core.viewport import ViewportController
from metrowatch.models.filter_model import FilterCriteria
from metrowatch.models.report_model import Comment, Report, normalize_status


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class LiveReportView:
    """Owns the live report collection and everything that reacts to it.

    ``start()`` loads the snapshot and subscribes to changes; ``close()``
    releases the subscription and the search timer. Both the backend and the
    geocoder are collaborators passed in by the caller.
    """

    def __init__(self, backend, geocoder, map_view, settings: Settings):
        self.backend = backend
        self.geocoder = geocoder
        self.settings = settings
        self.store = ReportStore()
        self.reconciler = ChangeReconciler(self.store)
        self.viewport = ViewportController(
            map_view, padding=(settings.FIT_PADDING, settings.FIT_PADDING)
        )
        self.search = GeocodeSearchController(
            geocoder,
            self.viewport,
            debounce_seconds=settings.GEOCODE_DEBOUNCE_SECONDS,
            min_length=settings.GEOCODE_MIN_QUERY_LENGTH,
            zoom=settings.GEOCODE_ZOOM,
            region_qualifier=settings.GEOCODE_REGION,
        )
        self.status = ConnectionStatus.CONNECTING
        self.criteria = FilterCriteria()
        self.diagnostics = deque(maxlen=settings.DIAGNOSTICS_LIMIT)
        self.subscription: Optional[ChangeSubscription] = None
        self.closed = False
        pub.subscribe(self.on_reports_changed, REPORTS_CHANGED)
        pub.subscribe(self.on_report_dropped, REPORT_DROPPED)

    async def start(self):
        """Subscribe to changes, load the snapshot, then reconcile.

        The subscription is opened before the bulk load so that changes
        written during the load are queued and replayed on top of the
        snapshot.
        """
        self.status = ConnectionStatus.CONNECTING
        subscription = ChangeSubscription(self.settings.REPORTS_COLLECTION)
        try:
            unsubscribe = await asyncio.to_thread(self.backend.subscribe, subscription)
        except Exception as e:
            logger.error(f"Failed to subscribe to report changes: {str(e)}")
            subscription = None
        else:
            subscription.bind(unsubscribe)
            self.subscription = subscription
        await self.load()
        if self.closed:
            return
        if subscription is None:
            self.status = ConnectionStatus.ERROR
            return
        self.reconciler.start(subscription)

    async def load(self):
        try:
            rows = await asyncio.to_thread(self.backend.fetch_all)
        except Exception as e:
            logger.error(f"Failed to load reports: {str(e)}")
            self.status = ConnectionStatus.ERROR
            return
        if not isinstance(rows, (list, tuple)):
            logger.error(f"Unexpected reports payload: {type(rows).__name__}")
            self.status = ConnectionStatus.ERROR
            return
        self.store.apply_snapshot(rows)
        self.status = ConnectionStatus.CONNECTED
        logger.info(f"Live view connected with {len(self.store)} reports")

    @property
    def reports(self):
        return self.store.reports

    def visible_reports(self, criteria: Optional[FilterCriteria] = None) -> List[Report]:
        return filter_reports(self.store.reports, criteria or self.criteria)

    def set_criteria(self, criteria: FilterCriteria) -> List[Report]:
        self.criteria = criteria
        visible = self.visible_reports()
        if self.settings.VIEWPORT_FOLLOWS_FILTER:
            self.viewport.fit_to_visible(visible)
        return visible

    def fit_scope(self) -> List[Report]:
        if self.settings.VIEWPORT_FOLLOWS_FILTER:
            return self.visible_reports()
        return list(self.store.reports)

    def on_reports_changed(self, store, version):
        if store is not self.store or self.closed:
            return
        self.viewport.fit_to_visible(self.fit_scope())

    def on_report_dropped(self, store, reason, payload):
        if store is not self.store:
            return
        self.diagnostics.append({"reason": reason, "payload": repr(payload)[:200]})

    def comments_for(self, report_id: str) -> List[Comment]:
        return self.store.comments_for(report_id)

    async def update_status(self, report_id: str, status: str, comment: Optional[str] = None) -> Report:
        """Set a report's status on the backend, then reflect it locally.

        Raises StatusUpdateError and leaves the view untouched on failure.
        """
        status = normalize_status(status)
        try:
            row: Dict[str, Any] = await asyncio.to_thread(
                self.backend.update_status, report_id, status
            )
        except StatusUpdateError:
            raise
        except Exception as e:
            logger.error(f"Error updating report {report_id}: {str(e)}")
            raise StatusUpdateError(report_id, str(e)) from e
        if not row:
            raise StatusUpdateError(report_id, "Backend returned no updated report")

        merged = dict(row)
        merged.setdefault("report_id", report_id)
        self.store.apply_change({"kind": "update", "new": merged})
        if comment and comment.strip():
            self.store.add_comment(report_id, comment.strip())
        logger.info(f"Report {report_id} status set to '{status}'")
        return self.store.get(report_id)

    async def close(self):
        if self.closed:
            return
        self.closed = True
        self.search.close()
        await self.reconciler.stop()
        if self.subscription is not None:
            self.subscription.release()
        pub.unsubscribe(self.on_reports_changed, REPORTS_CHANGED)
        pub.unsubscribe(self.on_report_dropped, REPORT_DROPPED)
        aclose = getattr(self.geocoder, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Live view closed")
