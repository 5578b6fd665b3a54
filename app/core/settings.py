from decimal import Decimal
from typing import Literal, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr, field_validator, model_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    APP_NAME: str = "Prestamos API"
    APP_VERSION: str = "1.0.0"
    APP_ENV: Literal["local", "dev", "staging", "prod"] = "local"
    DEBUG: bool = False
    CORS_ORIGINS: str = "*"      # CSV o '*'
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api"

    # DB
    DATABASE_URL: SecretStr = SecretStr("")
    DB_SSL: bool = False
    DB_CREATE_ALL: bool = False

    # Paginación
    PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100
    UPCOMING_DUE_DAYS: int = 7

    # Límites de montos
    LOAN_MAX_AMOUNT: Decimal = Decimal("999999999.99")
    PAYMENT_MAX_AMOUNT: Decimal = Decimal("9999999.99")

    # -------- validators (presencia, formato) --------
    @field_validator("DATABASE_URL")
    @classmethod
    def _required_secret(cls, v, info):
        if v is None or (hasattr(v, "get_secret_value") and v.get_secret_value() == ""):
            raise ValueError(f"{info.field_name} is required (set it in .env)")
        return v

    @field_validator("API_PREFIX")
    @classmethod
    def _normalize_prefix(cls, v: str) -> str:
        v = (v or "").strip().rstrip("/")
        return v if v.startswith("/") else f"/{v}"

    @field_validator("PAGE_SIZE", "MAX_PAGE_SIZE", "UPCOMING_DUE_DAYS")
    @classmethod
    def _positive_int(cls, v: int, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("LOAN_MAX_AMOUNT", "PAYMENT_MAX_AMOUNT")
    @classmethod
    def _positive_amount(cls, v: Decimal, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    # -------- cross-field checks --------
    @model_validator(mode="after")
    def _cross_checks(self):
        if self.PAGE_SIZE > self.MAX_PAGE_SIZE:
            raise ValueError("PAGE_SIZE cannot exceed MAX_PAGE_SIZE")
        return self

    @property
    def CORS_ORIGINS_LIST(self) -> List[str]:
        return ["*"] if self.CORS_ORIGINS.strip() == "*" else [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
