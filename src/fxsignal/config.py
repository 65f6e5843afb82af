"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class RatesSettings(BaseSettings):
    """Rate acquisition and history parameters."""

    model_config = SettingsConfigDict(env_prefix="RATES_")

    reference_currency: str = "JPY"
    attempt_timeout_seconds: float = 8.0
    constrained_attempt_timeout_seconds: float = 10.0
    history_max_length: int = 100
    constrained_history_max_length: int = 50
    # Low-memory / slow-network profile (mobile deployments)
    constrained: bool = False

    frankfurter_url: str = "https://api.frankfurter.app/latest"
    exchangerate_host_url: str = "https://api.exchangerate.host/latest"
    exchangerate_api_url: str = "https://api.exchangerate-api.com/v4/latest"

    @property
    def attempt_timeout(self) -> float:
        """Per-provider timeout for the active profile."""
        if self.constrained:
            return self.constrained_attempt_timeout_seconds
        return self.attempt_timeout_seconds

    @property
    def history_cap(self) -> int:
        """Maximum PairHistory length for the active profile."""
        if self.constrained:
            return self.constrained_history_max_length
        return self.history_max_length


class AlertSettings(BaseSettings):
    """Alert evaluation and scheduling parameters."""

    model_config = SettingsConfigDict(env_prefix="ALERTS_")

    volatility_threshold_pct: float = 0.5
    check_interval: int = 300  # seconds between alert evaluation cycles
    refresh_interval: int = 60  # seconds between analysis refresh cycles
    startup_delay: float = 5.0  # first alert cycle after boot


class RiskSettings(BaseSettings):
    """Account risk parameters used by the risk sizer.

    risk_percent is a percentage (2 means 2% of capital per trade).
    lot_size is the notional units of base currency per lot.
    """

    model_config = SettingsConfigDict(env_prefix="RISK_")

    capital: Decimal = Field(default=Decimal("100000"), gt=0)
    risk_percent: Decimal = Field(default=Decimal("2"), gt=0, le=100)
    leverage: int = Field(default=10, ge=1, le=1000)
    lot_size: Decimal = Decimal("100000")  # standard lot

    @property
    def risk_fraction(self) -> Decimal:
        return self.risk_percent / Decimal("100")


class PushSettings(BaseSettings):
    """Web Push (VAPID) delivery settings."""

    model_config = SettingsConfigDict(env_prefix="PUSH_")

    vapid_public_key: str = ""
    vapid_private_key: SecretStr = SecretStr("")
    vapid_subject: str = "mailto:admin@example.com"
    delivery_timeout_seconds: float = 10.0
    ttl_seconds: int = 3600
    icon: str = "/icon-192.png"
    badge: str = "/badge-96.png"


class ServerSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 3000
    enabled: bool = True


class StorageSettings(BaseSettings):
    """SQLite persistence configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/fxsignal.db"


class RiskSettingsUpdate(BaseModel):
    """User-supplied risk settings change. None fields keep the current value."""

    capital: Decimal | None = Field(default=None, gt=0)
    risk_percent: Decimal | None = Field(
        default=None,
        gt=0,
        le=100,
        validation_alias=AliasChoices("riskPercent", "risk_percent"),
    )
    leverage: int | None = Field(default=None, ge=1, le=1000)


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    rates: RatesSettings = RatesSettings()
    alerts: AlertSettings = AlertSettings()
    risk: RiskSettings = RiskSettings()
    push: PushSettings = PushSettings()
    server: ServerSettings = ServerSettings()
    storage: StorageSettings = StorageSettings()
