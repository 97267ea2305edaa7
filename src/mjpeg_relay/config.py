"""
MJPEG Relay Configuration
=========================

This module handles configuration loading for the relay.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    RELAY_AUTH_MODE        -> auth.mode
    RELAY_AUTH_SECRET      -> auth.secret
    RELAY_ADMIN_CODE       -> auth.admin_code
    RELAY_ISSUER_KEY       -> auth.issuer_key
    RELAY_MAX_TTL_SECONDS  -> auth.max_ttl_seconds
    RELAY_MAX_FRAME_BYTES  -> stream.max_frame_bytes
    RELAY_BOUNDARY         -> stream.boundary
    RELAY_HOST             -> server.host
    RELAY_PORT             -> server.port
    RELAY_LOG_LEVEL        -> logging.level
    RELAY_LOG_FORMAT       -> logging.format
    PORT                   -> server.port (takes precedence over RELAY_PORT)

Example:
    from mjpeg_relay.config import settings
    
    print(settings.server.port)
    print(settings.auth.resolve_mode())
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from mjpeg_relay.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


AUTH_MODES = ("open", "token", "digest")


# =============================================================================
# Configuration Models
# =============================================================================

class RelayConfig(BaseModel):
    """Relay identification configuration."""
    
    name: str = Field(default="mjpeg-relay", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ServerConfig(BaseModel):
    """Server configuration."""
    
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=4873, ge=1, le=65535, description="Bind port")


class StreamConfig(BaseModel):
    """Frame ingestion and multipart delivery configuration."""
    
    boundary: str = Field(
        default="mjpegrelay",
        min_length=1,
        max_length=70,
        pattern=r"^[A-Za-z0-9'()+_,./:=?-]+$",
        description="Multipart boundary token",
    )
    content_type: str = Field(
        default="image/jpeg",
        description="Media type of relayed frames",
    )
    max_frame_bytes: int = Field(
        default=2 * 1024 * 1024,
        ge=1,
        description="Frames larger than this are dropped at ingestion",
    )
    max_stalled_frames: int = Field(
        default=150,
        ge=1,
        description="Consecutive untaken frames before a watcher is evicted",
    )
    ingest_path: str = Field(
        default="/ws",
        pattern=r"^/",
        description="Path of the WebSocket ingestion endpoint",
    )


class AuthConfig(BaseModel):
    """
    Access gate configuration.
    
    Mode resolution:
        mode unset, secret unset  -> open
        mode unset, secret set    -> token
        mode token/digest         -> requires secret
        mode open                 -> must not carry a secret
    """
    
    mode: Optional[str] = Field(
        default=None,
        description="Auth mode: 'open', 'token' or 'digest' (derived if unset)",
    )
    secret: Optional[str] = Field(
        default=None,
        description="Enforcing-mode secret (token signing key or digest secret)",
    )
    admin_code: Optional[str] = Field(
        default=None,
        description="Admin code for /status and /admin (generated if unset)",
    )
    issuer_key: Optional[str] = Field(
        default=None,
        description="Operator key for POST /issue (token mode only)",
    )
    max_ttl_seconds: int = Field(
        default=86400,
        ge=1,
        description="Maximum lifetime of issued tokens",
    )
    leeway_seconds: int = Field(
        default=0,
        ge=0,
        description="Clock skew tolerated on token expiry",
    )
    
    def resolve_mode(self) -> str:
        """
        Decide the auth mode once, at startup.
        
        Raises:
            ConfigurationError: unknown mode, enforcing mode without a
                secret, or open mode with a secret
        """
        mode = self.mode.strip().lower() if self.mode else None
        has_secret = self.secret is not None
        
        if mode is None:
            return "token" if has_secret and self.secret else self._open_or_fail()
        
        if mode not in AUTH_MODES:
            raise ConfigurationError(
                f"Unknown auth mode '{self.mode}', expected one of {', '.join(AUTH_MODES)}"
            )
        
        if mode == "open":
            if has_secret:
                raise ConfigurationError("auth.mode is 'open' but auth.secret is set")
            return mode
        
        if not self.secret:
            raise ConfigurationError(f"auth.mode is '{mode}' but auth.secret is empty")
        return mode
    
    def _open_or_fail(self) -> str:
        # An explicitly empty secret is a misconfiguration, not a request for open mode
        if self.secret is not None:
            raise ConfigurationError("auth.secret is set but empty")
        return "open"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the relay.
    
    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """
    
    relay: RelayConfig = Field(default_factory=RelayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.
    
    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        
    Args:
        config_path: Path to config.yaml. If None, searches common locations.
        
    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break
    
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found, using defaults and environment variables")
    
    _apply_env_overrides(config_data)
    
    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""
    
    # Auth settings
    if env_mode := os.environ.get("RELAY_AUTH_MODE"):
        config_data.setdefault("auth", {})["mode"] = env_mode
    if (env_secret := os.environ.get("RELAY_AUTH_SECRET")) is not None:
        config_data.setdefault("auth", {})["secret"] = env_secret
    if env_admin := os.environ.get("RELAY_ADMIN_CODE"):
        config_data.setdefault("auth", {})["admin_code"] = env_admin
    if env_issuer := os.environ.get("RELAY_ISSUER_KEY"):
        config_data.setdefault("auth", {})["issuer_key"] = env_issuer
    if env_ttl := os.environ.get("RELAY_MAX_TTL_SECONDS"):
        config_data.setdefault("auth", {})["max_ttl_seconds"] = int(env_ttl)
    
    # Stream settings
    if env_max_frame := os.environ.get("RELAY_MAX_FRAME_BYTES"):
        config_data.setdefault("stream", {})["max_frame_bytes"] = int(env_max_frame)
    if env_boundary := os.environ.get("RELAY_BOUNDARY"):
        config_data.setdefault("stream", {})["boundary"] = env_boundary
    
    # Server settings
    if env_host := os.environ.get("RELAY_HOST"):
        config_data.setdefault("server", {})["host"] = env_host
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("RELAY_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    
    # Logging settings
    if env_log := os.environ.get("RELAY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log
    if env_log_format := os.environ.get("RELAY_LOG_FORMAT"):
        config_data.setdefault("logging", {})["format"] = env_log_format


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    
    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    
    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
