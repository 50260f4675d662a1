from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _to_bool(value: str) -> bool:
    return value.strip().lower() in {"true", "1", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    database_path: str = os.getenv("CGPA_DATABASE_PATH", "data/cgpa.db")
    log_level: str = os.getenv("CGPA_LOG_LEVEL", "INFO").upper()
    allow_zero_credits: bool = _to_bool(os.getenv("CGPA_ALLOW_ZERO_CREDITS", "false"))

    jwt_secret: str = os.getenv("CGPA_JWT_SECRET", "dev-only-secret-change-me-in-production")
    cookie_secure: bool = _to_bool(os.getenv("CGPA_COOKIE_SECURE", "false"))

    api_url: str = os.getenv("CGPA_API_URL", "http://localhost:8000")
    # Generous default so a cold-starting server is not reported as down.
    api_timeout: float = float(os.getenv("CGPA_API_TIMEOUT", "90"))

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )


settings = Settings()
