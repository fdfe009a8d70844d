from typing import Iterable, NamedTuple, Optional, Protocol, Tuple

from metrowatch.config import logger


class BoundingBox(NamedTuple):
    south: float
    west: float
    north: float
    east: float

    def as_bounds(self):
        return [[self.south, self.west], [self.north, self.east]]


class MapView(Protocol):
    def set_view(self, coordinates: Tuple[float, float], zoom: int): ...

    def fit_bounds(self, bounds: BoundingBox, padding: Tuple[int, int]): ...


def bounding_box(points) -> Optional[BoundingBox]:
    points = list(points)
    if not points:
        return None
    lats = [lat for lat, _ in points]
    lngs = [lng for _, lng in points]
    return BoundingBox(min(lats), min(lngs), max(lats), max(lngs))


class ViewportController:
    """Issues recenter and fit commands to the map.

    ``fit_to_visible`` only sends a command when the set of valid positions
    differs from the one it last fitted.
    """

    def __init__(self, map_view: MapView, padding: Tuple[int, int] = (24, 24)):
        self.map_view = map_view
        self.padding = padding
        self._fitted_points: Optional[frozenset] = None

    def recenter(self, coordinates, zoom: int):
        if coordinates is None:
            return
        lat, lng = coordinates
        logger.info(f"Recentering map on ({lat:.5f}, {lng:.5f}) at zoom {zoom}")
        self.map_view.set_view((lat, lng), zoom)

    def fit_to_visible(self, reports: Iterable, force: bool = False) -> Optional[BoundingBox]:
        points = [r.position for r in reports if r.position is not None]
        if not points:
            return None
        key = frozenset(points)
        if key == self._fitted_points and not force:
            return None
        box = bounding_box(points)
        self._fitted_points = key
        logger.debug(f"Fitting map to {len(key)} positions: {box}")
        self.map_view.fit_bounds(box, self.padding)
        return box
