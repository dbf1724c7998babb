from dataclasses import dataclass
import os
from typing import Any, Dict, Mapping, Optional

import yaml

from .logger import logger


DEFAULT_CONFIG_PATH = "config.yaml"

# Environment variable -> Settings attribute
ENV_VARS = {
    "MONGODB_URI": "mongodb_uri",
    "MONGODB_DB_NAME": "database_name",
    "MONGODB_COLLECTION": "collection_name",
    "ADMIN_KEY": "admin_key",
    "FRONTEND_URL": "frontend_url",
    "GOOGLE_CAPTCHA_SECRET_KEY": "captcha_secret_key",
    "APP_ENV": "environment",
    "PORT": "port",
    "LOG_PATH": "log_path",
    "LOG_FILENAME": "log_filename",
    "LOG_LEVEL": "log_level",
}

REQUIRED = ("mongodb_uri", "database_name", "collection_name", "admin_key")


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, read once at start-up and passed explicitly
    to the app factory, the store and the reCAPTCHA verifier.
    """

    mongodb_uri: str
    database_name: str
    collection_name: str
    admin_key: str
    frontend_url: str = "http://localhost:5173"
    captcha_secret_key: Optional[str] = None
    captcha_verify_url: str = "https://www.google.com/recaptcha/api/siteverify"
    captcha_score_threshold: float = 0.5
    captcha_timeout: float = 10.0
    mongo_timeout_ms: int = 5000
    connect_retries: int = 3
    environment: str = "production"
    port: int = 3000
    log_path: Optional[str] = None
    log_filename: str = "registration_api.log"
    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


def load_config(config_path: str) -> Dict[str, Any]:
    try:
        with open(config_path, "r") as file:
            return yaml.safe_load(file) or {}
    except FileNotFoundError:
        logger.info("Config file %s not found, using environment only", config_path)
        return {}


def _flatten(config: Dict[str, Any]) -> Dict[str, Any]:
    """Map the sectioned YAML layout onto flat Settings attribute names."""
    flat: Dict[str, Any] = {}
    mongodb = config.get("mongodb") or {}
    captcha = config.get("recaptcha") or {}
    server = config.get("server") or {}
    logging_ = config.get("logging") or {}

    flat["database_name"] = mongodb.get("database")
    flat["collection_name"] = mongodb.get("collection")
    flat["mongo_timeout_ms"] = mongodb.get("timeout_ms")
    flat["connect_retries"] = mongodb.get("connect_retries")
    flat["captcha_verify_url"] = captcha.get("verify_url")
    flat["captcha_score_threshold"] = captcha.get("score_threshold")
    flat["captcha_timeout"] = captcha.get("timeout")
    flat["frontend_url"] = server.get("frontend_url")
    flat["environment"] = server.get("environment")
    flat["port"] = server.get("port")
    flat["log_path"] = logging_.get("path")
    flat["log_filename"] = logging_.get("filename")
    flat["log_level"] = logging_.get("level")
    return {key: value for key, value in flat.items() if value is not None}


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings from an optional YAML file, overridden by environment variables.

    Args:
        config_path (str, optional): YAML file with non-secret defaults. Defaults to
            $REGISTRATION_CONFIG or config.yaml.
        environ (Mapping[str, str], optional): Environment to read. Defaults to os.environ.

    Returns:
        Settings: The immutable configuration.

    Raises:
        ValueError: If a required setting is missing or a numeric setting is malformed.
    """
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = environ.get("REGISTRATION_CONFIG", DEFAULT_CONFIG_PATH)

    values = _flatten(load_config(config_path))
    for env_name, attribute in ENV_VARS.items():
        value = environ.get(env_name)
        if value:
            values[attribute] = value

    missing = [name for name in REQUIRED if not values.get(name)]
    if missing:
        logger.error("Missing required configuration: %s", ", ".join(missing))
        raise ValueError(f"Missing required configuration: {', '.join(missing)}")

    for name in ("captcha_score_threshold", "captcha_timeout"):
        if name in values:
            values[name] = _cast(name, values[name], float)
    for name in ("mongo_timeout_ms", "connect_retries", "port"):
        if name in values:
            values[name] = _cast(name, values[name], int)

    return Settings(**values)


def _cast(name: str, value: Any, kind: type) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {value!r}") from e
