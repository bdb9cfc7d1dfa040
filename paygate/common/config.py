"""Central environment-driven settings for the payment service.

The process loads this once at startup. Provider credentials, webhook secrets
and routing policy are controlled by environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "paygate"
    log_level: str = "INFO"
    database_url: str = "sqlite+pysqlite:///./paygate.db"
    create_schema: bool = True
    frontend_url: str = "http://localhost:3000"
    otel_exporter_otlp_endpoint: str = ""
    provider_timeout_seconds: float = 10.0

    domestic_currency: str = "NGN"
    supported_currencies: list[str] = ["NGN", "USD", "GHS", "KES"]

    paystack_base_url: str = "https://api.paystack.co"
    paystack_secret_key: str = ""
    flutterwave_base_url: str = "https://api.flutterwave.com/v3"
    flutterwave_secret_key: str = ""
    flutterwave_webhook_secret: str = ""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
