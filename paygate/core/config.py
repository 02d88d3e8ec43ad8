"""
Configuration validation and management for PayGate.

Gateway credentials are loaded here and handed to each strategy as an
explicit GatewayConfig; strategies never read the environment themselves.
A missing credential is not a load error: the affected strategy reports a
configuration_error result when it is asked to reach its backend.
"""

import os
from typing import Dict, Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv
from paygate.core.exceptions import ConfigurationError
import logging

logger = logging.getLogger(__name__)

CREDIT_CARD = "credit-card"
PAYPAL = "paypal"


@dataclass(frozen=True)
class GatewayCredentials:
    """Credentials for one settlement backend"""
    api_key: Optional[str] = None
    api_secret: Optional[str] = None

    def __repr__(self) -> str:
        return f"GatewayCredentials(api_key={'***' if self.api_key else None})"


@dataclass(frozen=True)
class GatewayConfig:
    """Per-method gateway settings"""
    name: str
    credentials: GatewayCredentials = field(default_factory=GatewayCredentials)
    environment: str = "sandbox"
    timeout_seconds: float = 10.0
    connect_attempts: int = 3
    retry_backoff: float = 0.5
    requires_secret: bool = False

    def missing_credentials(self) -> list:
        """Names of credential fields this gateway needs but does not have."""
        missing = []
        if not self.credentials.api_key:
            missing.append("api_key")
        if self.requires_secret and not self.credentials.api_secret:
            missing.append("api_secret")
        return missing


@dataclass
class LedgerConfig:
    """Idempotency ledger settings"""
    backend: str = "memory"
    mongo_url: Optional[str] = None
    server_selection_timeout_ms: int = 5000


@dataclass
class RateLimitConfig:
    """Rate limiting configuration settings"""
    payment_rate_limit: str = "30/minute"
    api_rate_limit: str = "30/minute"


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    log_requests: bool = True


@dataclass
class AppConfig:
    """Main application configuration"""
    gateways: Dict[str, GatewayConfig]
    ledger: LedgerConfig
    rate_limit: RateLimitConfig
    logging: LoggingConfig
    environment: str = "development"
    monitoring_api_key: Optional[str] = None


class ConfigValidator:
    """Validates and loads application configuration"""

    LEDGER_BACKENDS = ("memory", "mongo")
    PAYMENT_ENVIRONMENTS = ("sandbox", "production")

    OPTIONAL_ENV_VARS = {
        "ENVIRONMENT": "development",
        "DEBUG": "false",
        "LOG_LEVEL": "INFO",
        "LOG_REQUESTS": "true",
        "PAYMENT_ENVIRONMENT": "sandbox",
        "GATEWAY_TIMEOUT_SECONDS": "10",
        "GATEWAY_CONNECT_ATTEMPTS": "3",
        "GATEWAY_RETRY_BACKOFF": "0.5",
        "CREDIT_CARD_API_KEY": None,
        "PAYPAL_CLIENT_ID": None,
        "PAYPAL_CLIENT_SECRET": None,
        "LEDGER_BACKEND": "memory",
        "MONGO_URL": None,
        "MONGO_SERVER_SELECTION_TIMEOUT_MS": "5000",
        "PAYMENT_RATE_LIMIT": "30/minute",
        "API_RATE_LIMIT": "30/minute",
        "MONITORING_API_KEY": None,
    }

    @classmethod
    def read_environment(cls) -> Dict[str, Optional[str]]:
        """Read every known variable, applying defaults."""
        return {
            var_name: os.getenv(var_name, default_value)
            for var_name, default_value in cls.OPTIONAL_ENV_VARS.items()
        }

    @classmethod
    def validate_mongo_url(cls, url: Optional[str]) -> str:
        """Validate MongoDB URL format"""
        if not url or not url.startswith(("mongodb://", "mongodb+srv://")):
            raise ConfigurationError(
                "Invalid MongoDB URL format",
                config_key="MONGO_URL",
                expected_value="mongodb://localhost:27017/paygate",
            )
        return url

    @classmethod
    def validate_choice(cls, value: str, choices: tuple, config_key: str) -> str:
        normalized = (value or "").strip().lower()
        if normalized not in choices:
            raise ConfigurationError(
                f"Invalid value for {config_key}",
                config_key=config_key,
                expected_value=" | ".join(choices),
            )
        return normalized

    @classmethod
    def validate_rate_limit(cls, rate_limit: str) -> str:
        """Validate rate limit format (e.g., '10/minute')"""
        try:
            parts = rate_limit.split("/")
            if len(parts) != 2:
                raise ValueError()
            int(parts[0])
            if parts[1] not in ["second", "minute", "hour", "day"]:
                raise ValueError()
        except ValueError:
            raise ConfigurationError(
                "Invalid rate limit format",
                config_key="rate_limit",
                expected_value="10/minute"
            )
        return rate_limit

    @classmethod
    def validate_boolean(cls, value: str, default: bool = False) -> bool:
        """Validate boolean string values"""
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    @classmethod
    def validate_integer(cls, value: str, default: int, min_val: int = None, max_val: int = None) -> int:
        """Validate integer values with optional bounds"""
        try:
            int_val = int(value)
            if min_val is not None and int_val < min_val:
                raise ValueError(f"Value must be >= {min_val}")
            if max_val is not None and int_val > max_val:
                raise ValueError(f"Value must be <= {max_val}")
            return int_val
        except (ValueError, TypeError):
            return default

    @classmethod
    def validate_float(cls, value: str, default: float, min_val: float = None, max_val: float = None) -> float:
        """Validate float values with optional bounds"""
        try:
            float_val = float(value)
            if min_val is not None and float_val < min_val:
                raise ValueError(f"Value must be >= {min_val}")
            if max_val is not None and float_val > max_val:
                raise ValueError(f"Value must be <= {max_val}")
            return float_val
        except (ValueError, TypeError):
            return default

    @classmethod
    def build_gateways(cls, env_vars: Dict[str, Optional[str]]) -> Dict[str, GatewayConfig]:
        environment = cls.validate_choice(
            env_vars["PAYMENT_ENVIRONMENT"], cls.PAYMENT_ENVIRONMENTS, "PAYMENT_ENVIRONMENT"
        )
        shared = {
            "environment": environment,
            "timeout_seconds": cls.validate_float(env_vars["GATEWAY_TIMEOUT_SECONDS"], 10.0, 0.1, 120.0),
            "connect_attempts": cls.validate_integer(env_vars["GATEWAY_CONNECT_ATTEMPTS"], 3, 1, 10),
            "retry_backoff": cls.validate_float(env_vars["GATEWAY_RETRY_BACKOFF"], 0.5, 0.0, 30.0),
        }

        return {
            CREDIT_CARD: GatewayConfig(
                name=CREDIT_CARD,
                credentials=GatewayCredentials(api_key=env_vars["CREDIT_CARD_API_KEY"]),
                **shared,
            ),
            PAYPAL: GatewayConfig(
                name=PAYPAL,
                credentials=GatewayCredentials(
                    api_key=env_vars["PAYPAL_CLIENT_ID"],
                    api_secret=env_vars["PAYPAL_CLIENT_SECRET"],
                ),
                requires_secret=True,
                **shared,
            ),
        }

    @classmethod
    def load_config(cls) -> AppConfig:
        """
        Load and validate complete application configuration

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If configuration validation fails
        """
        logger.info("Loading application configuration...")

        load_dotenv()
        env_vars = cls.read_environment()

        gateways = cls.build_gateways(env_vars)

        ledger_backend = cls.validate_choice(env_vars["LEDGER_BACKEND"], cls.LEDGER_BACKENDS, "LEDGER_BACKEND")
        ledger_config = LedgerConfig(
            backend=ledger_backend,
            mongo_url=cls.validate_mongo_url(env_vars["MONGO_URL"]) if ledger_backend == "mongo" else None,
            server_selection_timeout_ms=cls.validate_integer(
                env_vars["MONGO_SERVER_SELECTION_TIMEOUT_MS"], 5000, 1000, 30000
            ),
        )

        rate_limit_config = RateLimitConfig(
            payment_rate_limit=cls.validate_rate_limit(env_vars["PAYMENT_RATE_LIMIT"]),
            api_rate_limit=cls.validate_rate_limit(env_vars["API_RATE_LIMIT"]),
        )

        logging_config = LoggingConfig(
            # DEBUG=true overrides LOG_LEVEL
            level="DEBUG" if cls.validate_boolean(env_vars["DEBUG"], False) else env_vars["LOG_LEVEL"],
            log_requests=cls.validate_boolean(env_vars["LOG_REQUESTS"], True),
        )

        app_config = AppConfig(
            gateways=gateways,
            ledger=ledger_config,
            rate_limit=rate_limit_config,
            logging=logging_config,
            environment=env_vars["ENVIRONMENT"],
            monitoring_api_key=env_vars["MONITORING_API_KEY"],
        )

        for name, gateway in gateways.items():
            missing = gateway.missing_credentials()
            if missing:
                logger.warning(f"Gateway {name} has no {', '.join(missing)}; its payments will fail")

        logger.info("Configuration loaded successfully")
        logger.info(f"Environment: {app_config.environment}")
        logger.info(f"Ledger backend: {app_config.ledger.backend}")

        return app_config


# Global configuration instance
_app_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the application configuration

    Raises:
        ConfigurationError: If configuration is not loaded
    """
    if _app_config is None:
        raise ConfigurationError(
            "Configuration not loaded. Call load_config() first.",
            config_key="config_not_loaded"
        )

    return _app_config


def load_config() -> AppConfig:
    """Load and validate application configuration"""
    global _app_config

    _app_config = ConfigValidator.load_config()
    return _app_config
