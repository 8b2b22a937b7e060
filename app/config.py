# app/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"

    # Remote ledger (the single fixed upstream endpoint behind the gateway)
    ledger_upstream_url: str = "https://script.google.com/macros/s/ledger/exec"
    upstream_timeout_seconds: float = 30.0
    upstream_connect_timeout_seconds: float = 5.0

    # Gateway
    api_prefix: str = "/api"
    # The form client trusts every origin; see warn_on_risky_config
    allowed_origins: list[str] = ["*"]
    enable_request_logging: bool = True

    # Form client
    gateway_base_url: str = "http://localhost:4000/api"  # Where clients send submissions / lookups
    client_timeout_seconds: float = 30.0
    cache_dir: str = ".dispatch_cache"  # One JSON file per form kind
    connectivity_probe_url: str | None = None  # Defaults to <gateway>/health when unset
    connectivity_probe_interval: float = 15.0  # seconds

    # Monitoring
    enable_metrics: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def normalized_api_prefix(self) -> str:
        """API prefix with a leading slash and no trailing slash"""
        prefix = "/" + self.api_prefix.strip("/")
        return prefix if prefix != "/" else ""

    @property
    def effective_probe_url(self) -> str:
        """URL polled by the connectivity monitor"""
        if self.connectivity_probe_url:
            return self.connectivity_probe_url
        base = self.gateway_base_url.rstrip("/")
        prefix = self.normalized_api_prefix
        if prefix and base.endswith(prefix):
            base = base[: -len(prefix)]
        return f"{base}/health"

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields = [
            ("ledger_upstream_url", self.ledger_upstream_url),
            ("gateway_base_url", self.gateway_base_url),
        ]

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    # --- CORS ---
    if s.allowed_origins == ["*"]:
        warnings.append(
            "allowed_origins=['*'] (CORS is wide open: every origin may call the gateway)."
        )

    # --- Upstream ---
    if s.is_production and s.ledger_upstream_url.endswith("/ledger/exec"):
        warnings.append("prod: ledger_upstream_url still points at the placeholder endpoint.")
    if not s.ledger_upstream_url.startswith("https://"):
        warnings.append("ledger_upstream_url is not https (dispatch data travels in clear text).")

    # --- Timeouts ---
    if s.upstream_timeout_seconds <= 0:
        warnings.append("upstream_timeout_seconds <= 0: upstream calls will fail immediately.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")


settings = Settings()
validate_or_warn(settings)
