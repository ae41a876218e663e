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
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Booking creation only checks overlap and capacity unless this is on;
# buffer otherwise only shapes the suggested slots.
ENFORCE_BUFFER_ON_CREATE = _get_bool(os.getenv("ENFORCE_BUFFER_ON_CREATE"), default=False)

ENABLE_BACKGROUND_JOBS = _get_bool(os.getenv("ENABLE_BACKGROUND_JOBS"), default=True)
COMPLETION_SWEEP_INTERVAL_SECONDS = int(os.getenv("COMPLETION_SWEEP_INTERVAL_SECONDS", "300"))
REMINDER_SWEEP_INTERVAL_SECONDS = int(os.getenv("REMINDER_SWEEP_INTERVAL_SECONDS", "60"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
