import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @staticmethod
    def _get_float(name: str, default: float) -> float:
        return float(os.getenv(name, str(default)))

    @staticmethod
    def _get_bool(name: str, default: bool) -> bool:
        raw = os.getenv(name)
        if raw is None:
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    @property
    def BASE_URL(self) -> str:
        return os.getenv("BASE_URL", "http://localhost:8000")

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 10)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")

    @property
    def JWT_SECRET(self) -> str:
        return os.getenv("JWT_SECRET", "change-me-in-production")

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def JWT_EXPIRE_MINUTES(self) -> int:
        return self._get_int("JWT_EXPIRE_MINUTES", 60)

    @property
    def DEFAULT_CURRENCY(self) -> str:
        return os.getenv("DEFAULT_CURRENCY", "XAF")

    @property
    def MONEROO_API_KEY(self) -> str:
        return os.getenv("MONEROO_API_KEY", "")

    @property
    def MONEROO_API_URL(self) -> str:
        return os.getenv("MONEROO_API_URL", "https://api.moneroo.io/v1")

    @property
    def MONEROO_WEBHOOK_SECRET(self) -> str:
        return os.getenv("MONEROO_WEBHOOK_SECRET", "")

    @property
    def MONEROO_RETURN_URL(self) -> str:
        return os.getenv("MONEROO_RETURN_URL", "http://localhost:3000/payment-success")

    @property
    def MONEYFUSION_API_URL(self) -> str:
        return os.getenv("MONEYFUSION_API_URL", "")

    @property
    def MONEYFUSION_WEBHOOK_SECRET(self) -> str:
        return os.getenv("MONEYFUSION_WEBHOOK_SECRET", "")

    @property
    def GATEWAY_TIMEOUT_SECONDS(self) -> float:
        return self._get_float("GATEWAY_TIMEOUT_SECONDS", 15.0)

    @property
    def RECONCILE_STALE_AFTER_MINUTES(self) -> int:
        return self._get_int("RECONCILE_STALE_AFTER_MINUTES", 60)

    @property
    def RECONCILE_BATCH_LIMIT(self) -> int:
        return self._get_int("RECONCILE_BATCH_LIMIT", 100)

    @property
    def RECONCILE_INTERVAL_SECONDS(self) -> int:
        return self._get_int("RECONCILE_INTERVAL_SECONDS", 0)

    @property
    def AUTO_PROCESS_AFTER_RECONCILE(self) -> bool:
        return self._get_bool("AUTO_PROCESS_AFTER_RECONCILE", True)

    @property
    def ADMIN_EMAIL(self) -> str:
        return os.getenv("ADMIN_EMAIL", "").strip()

    @property
    def ADMIN_PASSWORD(self) -> str:
        return os.getenv("ADMIN_PASSWORD", "")

    @property
    def SMTP_HOST(self) -> str:
        return os.getenv("SMTP_HOST", "")

    @property
    def SMTP_PORT(self) -> int:
        return self._get_int("SMTP_PORT", 587)

    @property
    def SMTP_USER(self) -> str:
        return os.getenv("SMTP_USER", "")

    @property
    def SMTP_PASSWORD(self) -> str:
        return os.getenv("SMTP_PASSWORD", "")

    @property
    def SMTP_USE_TLS(self) -> bool:
        return self._get_bool("SMTP_USE_TLS", True)

    @property
    def SMTP_FROM_EMAIL(self) -> str:
        return os.getenv("SMTP_FROM_EMAIL", "")

    @property
    def SMTP_FROM_NAME(self) -> str:
        return os.getenv("SMTP_FROM_NAME", "Marketplace")


settings = Settings()

# Validate critical settings
if settings.JWT_SECRET == "change-me-in-production":
    import warnings
    warnings.warn("JWT_SECRET is using default value. Change it in production!", UserWarning)
