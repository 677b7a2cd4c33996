#!/usr/bin/env python3
"""
Configuration for the FileDrop server.

Configuration is assembled once at process start (defaults, then an optional
YAML file, then environment variables, then command line flags) and handed
to ``create_app``. Nothing below the application factory reads the
environment.
"""

import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_SECRET_KEY = "change-me-secret"
DEFAULT_ADMIN_USERNAME = "admin"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# ============================================================================
# Configuration Models
# ============================================================================

class ServerConfig(BaseModel):
    """Server configuration"""
    host: str = "0.0.0.0"
    port: int = 3000
    upload_dir: str = "./uploads"
    public_dir: Optional[str] = None
    nested_paths: bool = True
    max_file_size: int = 50 * 1024 * 1024  # 50MiB
    chunk_size: int = 1024 * 1024  # 1MiB
    download_max_age: int = 3600  # seconds


class SecurityConfig(BaseModel):
    """Security configuration"""
    auth_enabled: bool = True
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None
    credentials_path: str = "./credentials.json"
    secret_key: str = DEFAULT_SECRET_KEY

    @property
    def bootstrap_username(self) -> str:
        return self.admin_username or DEFAULT_ADMIN_USERNAME


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = LOG_FORMAT


class AppConfig(BaseModel):
    """Application configuration"""
    server: ServerConfig = Field(default_factory=ServerConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ============================================================================
# Loaders
# ============================================================================

def parse_size(size_str: str) -> int:
    """Parse size string (e.g., '50MB') to bytes"""
    units = {'KB': 1024, 'MB': 1024**2, 'GB': 1024**3, 'TB': 1024**4, 'B': 1}
    size_str = size_str.upper().strip()

    for unit, multiplier in units.items():
        if size_str.endswith(unit):
            try:
                number = float(size_str[:-len(unit)])
                return int(number * multiplier)
            except ValueError:
                pass

    try:
        return int(size_str)
    except ValueError:
        raise ValueError(f"Invalid size format: {size_str}")


# environment variable -> (section, field, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Optional[Callable[[str], Any]]]] = {
    "HOST": ("server", "host", None),
    "PORT": ("server", "port", None),
    "UPLOAD_DIR": ("server", "upload_dir", None),
    "PUBLIC_DIR": ("server", "public_dir", None),
    "NESTED_PATHS": ("server", "nested_paths", None),
    "MAX_FILE_SIZE": ("server", "max_file_size", parse_size),
    "AUTH_ENABLED": ("security", "auth_enabled", None),
    "ADMIN_USERNAME": ("security", "admin_username", None),
    "ADMIN_PASSWORD": ("security", "admin_password", None),
    "AUTH_SECRET": ("security", "secret_key", None),
    "CREDS_PATH": ("security", "credentials_path", None),
    "LOG_LEVEL": ("logging", "level", None),
    "LOG_FILE": ("logging", "file", None),
}


def load_config_from_file(config_file: str) -> AppConfig:
    """Load configuration from YAML file"""
    with open(config_file, 'r') as f:
        config_dict = yaml.safe_load(f) or {}
    return AppConfig(**config_dict)


def apply_env_overrides(config: AppConfig, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Return a copy of ``config`` with environment variables applied.

    Empty values are ignored so that e.g. ``ADMIN_PASSWORD=`` does not count
    as a configured password. Values are validated by the pydantic models.
    """
    if environ is None:
        environ = os.environ

    data = config.model_dump()
    for name, (section, field, convert) in ENV_OVERRIDES.items():
        value = environ.get(name)
        if not value:
            continue
        data[section][field] = convert(value) if convert else value
    return AppConfig(**data)


def load_config(config_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build the effective configuration from file and environment"""
    config = load_config_from_file(config_file) if config_file else AppConfig()
    return apply_env_overrides(config, environ)


def configure_logging(config: LoggingConfig) -> None:
    """Apply the configured level and optional log file to the root logger"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    if config.file:
        handler = logging.FileHandler(config.file)
        handler.setFormatter(logging.Formatter(config.format))
        root.addHandler(handler)
        logger.info(f"Logging to file {config.file}")
