import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except ValueError:
        return int(default)


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "1" if default else "0").strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return bool(default)


def _get_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    APP_NAME = os.getenv("APP_NAME", "booking_desk").strip()
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking_desk.db")
    DB_AUTO_CREATE_ALL = _get_bool("DB_AUTO_CREATE_ALL", True)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    AUTH_SECRET_KEY = os.getenv("AUTH_SECRET_KEY", "change-this-in-prod").strip()
    AUTH_ALGORITHM = os.getenv("AUTH_ALGORITHM", "HS256").strip()
    AUTH_ACCESS_TOKEN_MINUTES = _get_int("AUTH_ACCESS_TOKEN_MINUTES", 480)
    AUTH_ISSUER = os.getenv("AUTH_ISSUER", "booking_desk").strip()
    AUTH_AUDIENCE = os.getenv("AUTH_AUDIENCE", "booking_desk-staff").strip()
    AUTH_REQUIRED = _get_bool("AUTH_REQUIRED", False)

    RESERVATION_STRICT_TRANSITIONS = _get_bool("RESERVATION_STRICT_TRANSITIONS", True)

    NOTIFICATION_BASE_URL = os.getenv("NOTIFICATION_BASE_URL", "https://wa.me/{phone}").strip()
    NOTIFICATION_TEMPLATE = os.getenv(
        "NOTIFICATION_TEMPLATE",
        "Hola {name}! Tu reserva de {service} el {date} a las {time} fue {status} ✅",
    )

    CORS_ALLOW_ORIGINS = _get_list("CORS_ALLOW_ORIGINS", "http://localhost:3000,http://localhost:3001")
    SECURITY_HEADERS_ENABLED = _get_bool("SECURITY_HEADERS_ENABLED", True)


settings = Settings()
