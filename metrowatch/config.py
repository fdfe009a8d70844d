import os
from typing import Tuple
from pydantic_settings import BaseSettings
import logging


class Settings(BaseSettings):
    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB: str = os.getenv("MONGO_DB", "metrowatch")
    REPORTS_COLLECTION: str = "reports"
    USERS_COLLECTION: str = "users"
    GEOCODER_URL: str = os.getenv(
        "GEOCODER_URL", "https://nominatim.openstreetmap.org"
    )
    GEOCODER_USER_AGENT: str = "metrowatch/1.0"
    GEOCODER_TIMEOUT: float = 10.0
    GEOCODE_REGION: str = "Philippines"
    GEOCODE_DEBOUNCE_SECONDS: float = 1.0
    GEOCODE_MIN_QUERY_LENGTH: int = 3
    GEOCODE_ZOOM: int = 15
    MAP_CENTER: Tuple[float, float] = (14.5995, 120.9842)
    MAP_ZOOM: int = 12
    FIT_PADDING: int = 24
    VIEWPORT_FOLLOWS_FILTER: bool = False
    DIAGNOSTICS_LIMIT: int = 50
    ENV: str = os.getenv("ENV", "development")

    class Config:
        env_file = ".env"


settings = Settings()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("metrowatch")
