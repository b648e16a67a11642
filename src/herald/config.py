"""Configuration loading and merging for Herald."""

import logging
import uuid
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from .directory import EndpointKind
from .record import ServerRecord

logger = logging.getLogger(__name__)


@dataclass
class HeraldConfig:
    # Directory service connection
    server_address: str = "http://127.0.0.1:8889"
    communication_key: str = "NodeListServerDefaultKey"
    # Only change these if the directory's routes were customised
    add_endpoint: str = "/add"
    update_endpoint: str = "/update"
    remove_endpoint: str = "/remove"
    request_timeout: float = 10

    # Controls
    retry_registration_as_update_on_fail: bool = True
    update_server_periodically: bool = False
    update_server_period_seconds: float = 300
    deregister_on_exit: bool = True

    # Server information
    server_uuid: Optional[str] = None
    server_name: str = "Untitled Server"
    server_port: int = 7777
    player_count: int = 0
    player_capacity: int = 0
    extra_information: str = ""

    log_level: str = "INFO"

    @property
    def endpoints(self) -> dict[EndpointKind, str]:
        return {
            EndpointKind.ADD: self.add_endpoint,
            EndpointKind.UPDATE: self.update_endpoint,
            EndpointKind.REMOVE: self.remove_endpoint,
        }


def load_config(path: str | Path) -> HeraldConfig:
    """Load a HeraldConfig from a YAML file."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    valid_fields = {f.name for f in fields(HeraldConfig)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return HeraldConfig(**filtered)


def merge_cli_args(config: HeraldConfig, args) -> HeraldConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(HeraldConfig):
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config


def validate_config(config: HeraldConfig) -> None:
    """Raise ValueError if the config cannot drive a registration."""
    if not config.server_address:
        raise ValueError("server_address must not be empty")
    if config.update_server_periodically and config.update_server_period_seconds <= 0:
        raise ValueError(
            "update_server_period_seconds must be positive when "
            "update_server_periodically is enabled"
        )
    for name in ("server_port", "player_count", "player_capacity"):
        if getattr(config, name) < 0:
            raise ValueError(f"{name} must be >= 0")


def ensure_server_uuid(config: HeraldConfig) -> bool:
    """Assign a random UUID if the config has none. Returns True if one was generated."""
    if config.server_uuid:
        return False
    config.server_uuid = str(uuid.uuid4())
    logger.info("Automatically assigned server UUID %s", config.server_uuid)
    return True


def build_record(config: HeraldConfig) -> ServerRecord:
    """Create the ServerRecord described by *config* (which must have a UUID)."""
    if not config.server_uuid:
        raise ValueError("server_uuid is not set; call ensure_server_uuid first")
    return ServerRecord(
        uuid=config.server_uuid,
        name=config.server_name,
        port=config.server_port,
        player_count=config.player_count,
        player_capacity=config.player_capacity,
        extra=config.extra_information,
    )


def config_to_yaml(config: HeraldConfig) -> str:
    """Serialize a HeraldConfig to YAML, e.g. to persist a generated UUID."""
    return yaml.dump(asdict(config), default_flow_style=False, sort_keys=False)
