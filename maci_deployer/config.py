"""
Environment configuration and logging setup
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, '') else None


@dataclass
class DeployConfig:
    rpc_url: str = "http://localhost:8545"
    private_key: Optional[str] = None
    chain_id: Optional[int] = None
    network: Optional[str] = None
    storage_dir: str = "deployed-contracts"
    artifacts_dir: str = "artifacts"
    tx_timeout: float = 300
    verify_on_resume: bool = False
    slack_webhook: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DeployConfig":
        return cls(
            rpc_url=os.getenv("RPC_URL", "http://localhost:8545"),
            private_key=os.getenv("PRIVATE_KEY"),
            chain_id=_env_int("CHAIN_ID"),
            network=os.getenv("NETWORK") or None,
            storage_dir=os.getenv("DEPLOYED_CONTRACTS_DIR", "deployed-contracts"),
            artifacts_dir=os.getenv("ARTIFACTS_DIR", "artifacts"),
            tx_timeout=float(os.getenv("TX_TIMEOUT", "300")),
            verify_on_resume=_env_bool("VERIFY_ON_RESUME"),
            slack_webhook=os.getenv("SLACK_WEBHOOK") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
        )


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )
