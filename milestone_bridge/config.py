"""
Process configuration.

Values come from the environment (a local .env file is loaded first).
"""

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

DEFAULT_RPC_URL = "https://ethereum-sepolia-rpc.publicnode.com"
DEFAULT_CONTRACT_ADDRESS = "0x7C3dc63D5Ba4046F57680b24A1362f4052535378"


def _number(env, name, default, cast=int, minimum=0):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 10000
    rpc_url: str = DEFAULT_RPC_URL
    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    poll_interval: float = 20.0
    rpc_timeout: float = 15.0
    retry_max_delay: float = 300.0
    send_timeout: float = 10.0
    snapshot_timeout: float = 2.0
    max_subscribers: int = 1000  # 0 = unbounded
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env=None, dotenv=True):
        """Build settings from environment variables."""
        if env is None:
            if dotenv:
                load_dotenv(find_dotenv(usecwd=True))
            env = os.environ

        log_level = env.get("LOG_LEVEL", cls.log_level).upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"LOG_LEVEL {log_level!r} is not a logging level")

        settings = cls(
            host=env.get("HOST", cls.host),
            port=_number(env, "PORT", cls.port, minimum=0),
            rpc_url=env.get("RPC_URL", cls.rpc_url),
            contract_address=env.get("CONTRACT_ADDRESS", cls.contract_address),
            poll_interval=_number(env, "POLL_INTERVAL", cls.poll_interval, float, 0.1),
            rpc_timeout=_number(env, "RPC_TIMEOUT", cls.rpc_timeout, float, 0.1),
            retry_max_delay=_number(env, "RETRY_MAX_DELAY", cls.retry_max_delay, float, 0.1),
            send_timeout=_number(env, "SEND_TIMEOUT", cls.send_timeout, float, 0.1),
            snapshot_timeout=_number(env, "SNAPSHOT_TIMEOUT", cls.snapshot_timeout, float, 0.1),
            max_subscribers=_number(env, "MAX_SUBSCRIBERS", cls.max_subscribers),
            log_level=log_level,
        )
        if settings.port > 65535:
            raise ConfigError(f"PORT must be <= 65535, got {settings.port}")
        if not settings.rpc_url:
            raise ConfigError("RPC_URL is empty")
        if not settings.contract_address:
            raise ConfigError("CONTRACT_ADDRESS is empty")
        return settings
