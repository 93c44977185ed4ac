from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    input_dir: str
    output_dir: str
    max_fetch_retries: int
    retry_backoff_seconds: float
    max_workers: int
    schedule_day: int
    schedule_hour_utc: int
    schedule_minute_utc: int
    daily_hour_utc: int
    daily_minute_utc: int
    stale_run_minutes: int


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "qcreport"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./qcreport.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        input_dir=os.getenv("INPUT_DIR", "./data/checklists"),
        output_dir=os.getenv("OUTPUT_DIR", "./outputs"),
        max_fetch_retries=int(os.getenv("MAX_FETCH_RETRIES", "1")),
        retry_backoff_seconds=float(os.getenv("RETRY_BACKOFF_SECONDS", "1")),
        max_workers=int(os.getenv("MAX_WORKERS", "4")),
        schedule_day=int(os.getenv("SCHEDULE_DAY", "1")),
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "6")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
        daily_hour_utc=int(os.getenv("DAILY_HOUR_UTC", "12")),
        daily_minute_utc=int(os.getenv("DAILY_MINUTE_UTC", "0")),
        stale_run_minutes=int(os.getenv("STALE_RUN_MINUTES", "60")),
    )
