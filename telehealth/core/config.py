import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:3000"])

# Civil timezone every wall-clock rule is interpreted in.
SCHEDULING_TIMEZONE = os.getenv("SCHEDULING_TIMEZONE", "America/Santiago")

# Fallbacks for the admin-editable values in system_configurations.
CONFIRMATION_HOURS_BEFORE = int(os.getenv("CONFIRMATION_HOURS_BEFORE", "24"))
SCHEDULE_START_HOUR = os.getenv("SCHEDULE_START_HOUR", "08:00")
SCHEDULE_END_HOUR = os.getenv("SCHEDULE_END_HOUR", "23:00")

DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES", "60"))
AVAILABLE_DATES_RANGE_DAYS = int(os.getenv("AVAILABLE_DATES_RANGE_DAYS", "30"))
MAX_APPOINTMENT_NOTE_LENGTH = 600

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
