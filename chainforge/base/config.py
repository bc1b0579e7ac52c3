# ============================================================================
# chainforge/base/config.py
# Orchestrator Configuration Management
# ============================================================================
#
# PURPOSE:
# This file defines all configuration settings for the chain orchestrator:
# per-hop timeouts, health thresholds, where the privileged hop backend lives,
# and how logging is set up.
#
# KEY CONCEPTS:
# 1. Dataclasses: each concern gets its own frozen section
# 2. Environment Variables: settings read from the system (e.g., CHAINFORGE_HOP_TIMEOUT=45)
# 3. Only configuration is process-wide. Chain registries are owned by whoever
#    composes the application and are passed around explicitly.
#
# ============================================================================

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


# ============================================================================
# Connection Sequencing Configuration
# ============================================================================
# Controls how long the Connector and Disconnector wait on the Hop Provider.

@dataclass(frozen=True)
class ConnectConfig:
    # How long a single hop may take to report a live local endpoint (seconds)
    # Passed down to the provider AND enforced locally; expiry fails the hop
    # with a dial-timeout and rolls the chain back.
    hop_timeout_seconds: float = 30.0

    # How long a single hop teardown may take before it is logged as stuck
    # and the Disconnector moves on to the next hop
    teardown_timeout_seconds: float = 10.0


# ============================================================================
# Health Monitoring Configuration
# ============================================================================

@dataclass(frozen=True)
class HealthConfig:
    # Hops reporting a latency above this (milliseconds) get a recommendation
    latency_threshold_ms: float = 200.0

    # How long one queryStatus call may take before the hop counts as not alive
    status_timeout_seconds: float = 5.0

    # Polling interval used by HealthMonitor.watch() when none is given
    poll_interval_seconds: float = 15.0


# ============================================================================
# Hop Provider (privileged backend) Configuration
# ============================================================================

@dataclass(frozen=True)
class ProviderConfig:
    # Where the privileged relay/tunnel backend listens (loopback only by default)
    base_url: str = "http://127.0.0.1:8766"

    # Bearer token presented to the backend; empty means no Authorization header
    api_token: str = ""

    # Transport-level timeout for one RPC (seconds). Establish calls are also
    # bounded by ConnectConfig.hop_timeout_seconds.
    request_timeout: float = 60.0


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    # DEBUG / INFO / WARNING / ERROR
    level: str = "INFO"

    # %(name)s shows which module logged (e.g., "chainforge.engine.connector")
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    # Write a rotating log file under base_dir in addition to the console
    file_enabled: bool = False

    file_name: str = "chainforge.log"

    # Rotate at this size (MB), keeping backup_count old files
    max_file_size_mb: int = 10
    backup_count: int = 5


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass(frozen=True)
class ChainForgeConfig:
    connect: ConnectConfig = field(default_factory=ConnectConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    log: LogConfig = field(default_factory=LogConfig)

    # Debug mode: DEBUG logging regardless of log.level
    debug: bool = False

    # Base directory for the optional log file
    base_dir: Path = field(default_factory=lambda: Path.home() / ".chainforge")

    # Factory: builds a ChainForgeConfig from environment variables
    @classmethod
    def from_env(cls) -> "ChainForgeConfig":
        connect = ConnectConfig(
            hop_timeout_seconds=float(os.getenv("CHAINFORGE_HOP_TIMEOUT", "30")),
            teardown_timeout_seconds=float(os.getenv("CHAINFORGE_TEARDOWN_TIMEOUT", "10")),
        )

        health = HealthConfig(
            latency_threshold_ms=float(os.getenv("CHAINFORGE_LATENCY_THRESHOLD_MS", "200")),
            status_timeout_seconds=float(os.getenv("CHAINFORGE_STATUS_TIMEOUT", "5")),
            poll_interval_seconds=float(os.getenv("CHAINFORGE_HEALTH_INTERVAL", "15")),
        )

        provider = ProviderConfig(
            base_url=os.getenv("CHAINFORGE_PROVIDER_URL", "http://127.0.0.1:8766"),
            api_token=os.getenv("CHAINFORGE_PROVIDER_TOKEN", ""),
            request_timeout=float(os.getenv("CHAINFORGE_PROVIDER_TIMEOUT", "60")),
        )

        log = LogConfig(
            level=os.getenv("CHAINFORGE_LOG_LEVEL", "INFO"),
            file_enabled=os.getenv("CHAINFORGE_LOG_FILE", "false").lower() == "true",
        )

        return cls(
            connect=connect,
            health=health,
            provider=provider,
            log=log,
            debug=os.getenv("CHAINFORGE_DEBUG", "false").lower() == "true",
            base_dir=Path(os.getenv("CHAINFORGE_DATA_DIR", str(Path.home() / ".chainforge"))),
        )


# ============================================================================
# Global Configuration Accessors
# ============================================================================

_config: Optional[ChainForgeConfig] = None


def get_config() -> ChainForgeConfig:
    """
    Get the global configuration instance.

    Only creates the config once (from the environment), then reuses it.
    """
    global _config
    if _config is None:
        _config = ChainForgeConfig.from_env()
    return _config


def set_config(config: Optional[ChainForgeConfig]) -> None:
    """
    Replace the global configuration (mainly used for testing).

    Passing None forces the next get_config() to re-read the environment.
    """
    global _config
    _config = config


def setup_logging(config: Optional[ChainForgeConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Sets up console logging, plus a rotating file when enabled.
    Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        cfg.base_dir.mkdir(parents=True, exist_ok=True)
        log_path = cfg.base_dir / cfg.log.file_name
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,  # Convert MB to bytes
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = logging.DEBUG if cfg.debug else getattr(logging, cfg.log.level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=cfg.log.format,
        handlers=handlers,
        force=True,  # Replace any existing logging configuration
    )
    logger.debug(f"[Config] Logging configured at {logging.getLevelName(level)}")
