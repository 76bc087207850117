
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("keiri-docs", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Relational store
    database_path: str = Field("keiri_docs.db", alias="DATABASE_PATH")

    # Dropbox
    storage_root: str = Field("/経理書類", alias="STORAGE_ROOT")
    dropbox_access_token: str | None = Field(default=None, alias="DROPBOX_ACCESS_TOKEN")
    storage_pacing_seconds: float = Field(0.05, alias="STORAGE_PACING_SECONDS")  # Dropbox rate limit

    # Gemini OCR
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field("gemini-2.5-flash", alias="GEMINI_MODEL")
    ocr_max_upload_bytes: int = Field(10 * 1024 * 1024, alias="OCR_MAX_UPLOAD_BYTES")

    # Gmail intake
    gmail_client_id: str | None = Field(default=None, alias="GMAIL_CLIENT_ID")
    gmail_client_secret: str | None = Field(default=None, alias="GMAIL_CLIENT_SECRET")
    gmail_refresh_token: str | None = Field(default=None, alias="GMAIL_REFRESH_TOKEN")
    gmail_max_fetch: int = Field(20, alias="GMAIL_MAX_FETCH")

    # Resend notifications
    resend_api_key: str | None = Field(default=None, alias="RESEND_API_KEY")
    resend_from_email: str = Field("経理書類管理 <noreply@resend.dev>", alias="RESEND_FROM_EMAIL")
    due_alert_days: int = Field(3, alias="DUE_ALERT_DAYS")

    # Monthly accountant export cron
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Events
    servicebus_connection_string: str | None = Field(default=None, alias="SERVICEBUS_CONNECTION_STRING")
    servicebus_entity_name: str = Field("document-events", alias="SERVICEBUS_ENTITY_NAME")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
