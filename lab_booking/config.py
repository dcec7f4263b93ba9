from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    # Directory holding the YAML files (labs, bookings, exam periods, event log)
    data_dir: str = os.getenv("LAB_BOOKING_DATA_DIR", "data")

    # How far ahead a booking may be requested, in days from today (inclusive)
    booking_horizon_days: int = int(os.getenv("BOOKING_HORIZON_DAYS", "365"))

    # Bearer tokens are HS256 JWTs issued by the authentication service
    jwt_secret: str = os.getenv("JWT_SECRET", "change-me-in-production")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expires_days: int = int(os.getenv("JWT_EXPIRES_DAYS", "7"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "5000"))


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
