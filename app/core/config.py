from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Fixed bcrypt cost factor for every account created by a batch
    bcrypt_rounds: int = Field(10, alias="BCRYPT_ROUNDS")

    bulk_max_rows: int = Field(1000, alias="BULK_MAX_ROWS")
    # Applies to a single row's transaction, never to the whole batch
    bulk_row_timeout_seconds: Optional[float] = Field(None, alias="BULK_ROW_TIMEOUT_SECONDS")
    error_report_dir: str = Field("uploads/error-reports", alias="ERROR_REPORT_DIR")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    smtp_host: Optional[str] = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(True, alias="SMTP_USE_TLS")
    smtp_from_email: Optional[str] = Field(None, alias="SMTP_FROM_EMAIL")
    app_login_url: Optional[str] = Field(None, alias="APP_LOGIN_URL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_from_email)


settings = Settings()
