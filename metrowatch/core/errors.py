class MetroWatchError(Exception):
    """Base class for errors raised by the live report view."""


class BackendUnavailable(MetroWatchError):
    """The reports backend could not be reached or returned an unusable shape."""


class StatusUpdateError(MetroWatchError):
    """The backend rejected a status update; local state is left unchanged."""

    def __init__(self, report_id: str, message: str):
        super().__init__(message)
        self.report_id = report_id


class GeocodingUnavailable(MetroWatchError):
    """The geocoding service failed at the transport level."""
