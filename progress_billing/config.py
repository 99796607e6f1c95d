"""
Configuration loader for the Progress Billing engine.

Loads settings from billing_config.yaml and provides typed access
to all configuration sections.
"""
import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
from functools import lru_cache

import yaml


# Default config ships inside the package
DEFAULT_CONFIG_PATH = Path(__file__).parent / "billing_config.yaml"
CONFIG_PATH_ENV = "BILLING_CONFIG_PATH"

PREVIOUS_CERTIFICATE_BASES = ("current_payment_due", "earned_less_retainage", "none")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


class BillingConfig:
    """
    Configuration manager for the Progress Billing engine.

    Loads YAML configuration and provides typed access to all sections.
    Use get_config() to obtain the singleton instance.
    """

    def __init__(self, config_path: Optional[Path] = None):
        env_path = os.environ.get(CONFIG_PATH_ENV)
        self._config_path = config_path or (Path(env_path) if env_path else DEFAULT_CONFIG_PATH)
        self._config: dict = {}
        self._load()

    def _load(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            raise ConfigurationError(f"Config file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r') as f:
                self._config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self._config, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load()
        get_config.cache_clear()

    @property
    def path(self) -> Path:
        return self._config_path

    @property
    def version(self) -> str:
        """Configuration file version."""
        return self._config.get("version", "unknown")

    # =========================================================================
    # Database
    # =========================================================================

    @property
    def database(self) -> dict:
        return self._config.get("database", {})

    @property
    def database_url(self) -> str:
        return self.database.get("url", "sqlite:///./billing.db")

    # =========================================================================
    # Billing Policy
    # =========================================================================

    @property
    def billing(self) -> dict:
        """Billing policy configuration."""
        return self._config.get("billing", {})

    @property
    def default_retainage_percent(self) -> Decimal:
        """
        Retainage percent seeded on new continuation-sheet lines.

        Raises:
            ConfigurationError: If the value is outside [0, 100]
        """
        raw = self.billing.get("default_retainage_percent", 10)
        try:
            value = Decimal(str(raw))
        except ArithmeticError:
            raise ConfigurationError(f"default_retainage_percent is not a number: {raw!r}")
        if value < 0 or value > 100:
            raise ConfigurationError(
                f"default_retainage_percent must be between 0 and 100, got {raw}"
            )
        return value

    @property
    def warn_on_overbilling(self) -> bool:
        """Whether over-billed lines are logged as warnings."""
        return self.billing.get("warn_on_overbilling", True)

    # =========================================================================
    # Certificate
    # =========================================================================

    @property
    def certificate(self) -> dict:
        return self._config.get("certificate", {})

    @property
    def previous_certificates_basis(self) -> str:
        """
        How 'Less Previous Certificates' is carried forward.

        Returns:
            One of 'current_payment_due', 'earned_less_retainage', 'none'
        """
        basis = self.certificate.get("previous_certificates_basis", "current_payment_due")
        if basis not in PREVIOUS_CERTIFICATE_BASES:
            raise ConfigurationError(
                f"Unknown previous_certificates_basis '{basis}'. "
                f"Expected one of: {', '.join(PREVIOUS_CERTIFICATE_BASES)}"
            )
        return basis

    # =========================================================================
    # Currency
    # =========================================================================

    @property
    def currency_config(self) -> dict:
        """Currency display settings. Amounts always display to the cent."""
        return self._config.get("currency", {
            "symbol": "$",
            "thousands_separator": ","
        })

    # =========================================================================
    # Logging
    # =========================================================================

    @property
    def logging(self) -> dict:
        return self._config.get("logging", {})

    @property
    def log_level(self) -> str:
        return str(self.logging.get("level", "INFO")).upper()

    @property
    def log_format(self) -> str:
        return self.logging.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # =========================================================================
    # Raw Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Get a top-level config value by key."""
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        """Dictionary-style access to config."""
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        return key in self._config


@lru_cache(maxsize=1)
def get_config(config_path: Optional[str] = None) -> BillingConfig:
    """
    Get the singleton configuration instance.

    Args:
        config_path: Optional path to config file. Only used on first call.

    Returns:
        BillingConfig singleton instance
    """
    path = Path(config_path) if config_path else None
    return BillingConfig(path)


def reload_config() -> BillingConfig:
    """Reload configuration from disk and return new instance."""
    get_config.cache_clear()
    return get_config()
