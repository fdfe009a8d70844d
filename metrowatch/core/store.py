import itertools
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from pubsub import pub
from pydantic import ValidationError

from metrowatch.config import logger
from metrowatch.models.change_model import ChangeEvent, ChangeKind
from metrowatch.models.report_model import Comment, Report

# Topics published on the pubsub bus.
REPORTS_CHANGED = "reports_changed"
REPORT_DROPPED = "report_dropped"


def _describe(error: Exception) -> str:
    if isinstance(error, ValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'row'}: {e['msg']}"
            for e in error.errors()
        )
    return str(error)


def _keep_author(current: Report, incoming: Report) -> Report:
    # Change-stream documents carry no users join; the reporter is unchanged.
    if incoming.author is None and current.author is not None and incoming.user_id == current.user_id:
        return incoming.model_copy(update={"author": current.author})
    return incoming


class ReportStore:
    """The in-memory collection of reports.

    ``reports`` is an immutable tuple replaced on every change, so readers
    holding an earlier view never see it mutate. Only ``apply_snapshot`` and
    ``apply_change`` modify the collection.
    """

    def __init__(self):
        self._reports: Tuple[Report, ...] = ()
        self._index: Dict[str, int] = {}
        self._comments: Dict[str, List[Comment]] = {}
        self._comment_ids = itertools.count(1)
        self.version = 0
        self.dropped = 0

    @property
    def reports(self) -> Tuple[Report, ...]:
        return self._reports

    def __len__(self) -> int:
        return len(self._reports)

    def __iter__(self) -> Iterator[Report]:
        return iter(self._reports)

    def __contains__(self, report_id: str) -> bool:
        return report_id in self._index

    def get(self, report_id: str) -> Optional[Report]:
        position = self._index.get(report_id)
        if position is None:
            return None
        return self._reports[position]

    def apply_snapshot(self, rows: Iterable[Any]) -> int:
        """Replace the whole collection. Returns the number of reports kept."""
        reports: List[Report] = []
        index: Dict[str, int] = {}
        for row in rows:
            report = self._ingest(row)
            if report is None:
                continue
            if report.id in index:
                reports[index[report.id]] = report
            else:
                index[report.id] = len(reports)
                reports.append(report)
        self._reports = tuple(reports)
        self._index = index
        self._comments = {}
        self._publish()
        logger.info(f"Applied snapshot with {len(reports)} reports (version {self.version})")
        return len(reports)

    def apply_change(self, event: Any) -> bool:
        """Project one change event onto the collection.

        Never raises for a bad event: it is dropped and reported on the
        ``report_dropped`` topic. Returns True when the collection changed.
        """
        try:
            change = ChangeEvent.from_payload(event)
            report_id = change.report_id
            report = None
            if change.kind != ChangeKind.DELETE:
                report = Report.from_row(change.new)
        except (ValidationError, ValueError) as e:
            self._drop(f"Malformed change event: {_describe(e)}", event)
            return False

        if change.kind == ChangeKind.DELETE:
            return self._remove(report_id)
        return self._upsert(report)

    def comments_for(self, report_id: str) -> List[Comment]:
        return list(self._comments.get(report_id, []))

    def add_comment(self, report_id: str, text: str, author: str = "Current User") -> Comment:
        comment = Comment(id=next(self._comment_ids), text=text, author=author)
        self._comments.setdefault(report_id, []).append(comment)
        return comment

    def _ingest(self, row: Any) -> Optional[Report]:
        if isinstance(row, Report):
            return row
        try:
            return Report.from_row(row)
        except (ValidationError, ValueError) as e:
            self._drop(f"Malformed report row: {_describe(e)}", row)
            return None

    def _upsert(self, report: Report) -> bool:
        position = self._index.get(report.id)
        if position is None:
            self._index[report.id] = len(self._reports)
            self._reports = self._reports + (report,)
            logger.debug(f"Inserted report {report.id}")
        else:
            current = self._reports[position]
            report = _keep_author(current, report)
            if current == report:
                return False
            reports = list(self._reports)
            reports[position] = report
            self._reports = tuple(reports)
            logger.debug(f"Replaced report {report.id}")
        self._publish()
        return True

    def _remove(self, report_id: str) -> bool:
        if report_id not in self._index:
            logger.debug(f"Delete for unknown report {report_id} ignored")
            return False
        self._reports = tuple(r for r in self._reports if r.id != report_id)
        self._index = {r.id: i for i, r in enumerate(self._reports)}
        self._comments.pop(report_id, None)
        logger.debug(f"Removed report {report_id}")
        self._publish()
        return True

    def _publish(self):
        self.version += 1
        self._send(REPORTS_CHANGED, store=self, version=self.version)

    def _drop(self, reason: str, payload: Any):
        self.dropped += 1
        logger.warning(f"{reason} (dropped)")
        self._send(REPORT_DROPPED, store=self, reason=reason, payload=payload)

    def _send(self, topic: str, **message):
        try:
            pub.sendMessage(topic, **message)
        except Exception as e:
            logger.error(f"Listener on '{topic}' failed: {str(e)}")
