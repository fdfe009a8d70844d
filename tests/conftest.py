import pytest

from metrowatch.config import Settings
from metrowatch.core.errors import GeocodingUnavailable
from metrowatch.core.geocoder import Coordinates
from metrowatch.core.live_view import LiveReportView
from metrowatch.core.store import ReportStore

from helpers import FakeBackend, FakeGeocoder, FakeMap, make_row


@pytest.fixture
def settings():
    return Settings(GEOCODE_DEBOUNCE_SECONDS=0.05)


@pytest.fixture
def store():
    return ReportStore()


@pytest.fixture
def backend():
    return FakeBackend([make_row("r1"), make_row("r2", latitude="14.60", longitude="121.05")])


@pytest.fixture
def geocoder():
    return FakeGeocoder(
        {
            "Makati, Philippines": Coordinates(14.5547, 121.0244),
            "Taguig, Philippines": Coordinates(14.5176, 121.0509),
            "Nowhere, Philippines": None,
            "Offline, Philippines": GeocodingUnavailable("connection refused"),
        }
    )


@pytest.fixture
def fake_map():
    return FakeMap()


@pytest.fixture
async def live_view(backend, geocoder, fake_map, settings):
    view = LiveReportView(backend, geocoder, fake_map, settings)
    yield view
    await view.close()
