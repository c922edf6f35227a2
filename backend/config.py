import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Repo root is always the parent of /backend
repo_root = Path(__file__).resolve().parent.parent

# Load local environment variables (do NOT commit secrets).
# This enables developers to provide GEMINI_API_KEY via .env without exporting in every terminal.
load_dotenv(repo_root / ".env", override=False)


def _get_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    app_name: str = "Civic Issue Inference Engine"
    env: str = os.getenv("APP_ENV", os.getenv("ENV", "local"))

    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:5173")

    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./civic_issues.db")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = _get_bool("LOG_JSON", "false")

    # AI (Gemini): models/config are fully controlled via env (no hardcoding in callers).
    # An unset GEMINI_API_KEY means the classifier is unavailable and every caller uses its fallback.
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_model_primary: str = os.getenv(
        "GEMINI_MODEL_PRIMARY",
        os.getenv("GEMINI_MODEL_DEFAULT", "gemini-2.0-flash"),
    )
    gemini_model_fallback: str = os.getenv("GEMINI_MODEL_FALLBACK", "gemini-2.0-flash-lite")
    gemini_temperature: float = float(os.getenv("GEMINI_TEMPERATURE", "0.1"))
    gemini_max_output_tokens: int = int(os.getenv("GEMINI_MAX_OUTPUT_TOKENS", "512"))
    # Per-request network timeout for a single HTTP round-trip to Gemini.
    gemini_timeout_s: int = int(os.getenv("GEMINI_TIMEOUT_S", "20"))
    # Attempts per model (includes the initial try). Total attempts = attempts_per_model * number_of_models.
    gemini_attempts_per_model: int = int(os.getenv("GEMINI_ATTEMPTS_PER_MODEL", "1"))
    gemini_endpoint: str = os.getenv(
        "GEMINI_ENDPOINT",
        "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
    )

    # Hard deadline for one classifier capability call, across all retries and models.
    # Expiry is handled exactly like "classifier unavailable".
    classifier_timeout_s: float = float(os.getenv("CLASSIFIER_TIMEOUT_S", "30"))

    # Bounded fan-out for bulk ranking / bulk forecasting.
    engine_max_workers: int = int(os.getenv("ENGINE_MAX_WORKERS", "8"))

    # Geospatial windows as fixed lat/lng deltas (degrees).
    # strict ~50 m, standard ~100 m, wide ~1 km.
    duplicate_window_strict_deg: float = float(os.getenv("DUPLICATE_WINDOW_STRICT_DEG", "0.0005"))
    duplicate_window_standard_deg: float = float(os.getenv("DUPLICATE_WINDOW_STANDARD_DEG", "0.001"))
    duplicate_window_wide_deg: float = float(os.getenv("DUPLICATE_WINDOW_WIDE_DEG", "0.01"))

    recreate_db_on_startup: bool = _get_bool("RECREATE_DB_ON_STARTUP", "false")


settings = Settings()
