"""
Simulator configuration.

Values are layered: model defaults, then a JSON file (camelCase keys), then the
``WS_*`` environment variables understood by the k6 load scripts, then explicit
overrides (the CLI flags).
"""

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from ocpp_loadsim.errors import ConfigError
from ocpp_loadsim.models.identity import ProtocolSubtype

CONFIG_FILE = Path.home() / ".loadsim" / "config.json"

ENV_VARS = {
    "WS_HOST": "transport_host",
    "WS_PORT": "transport_port",
    "WS_PROTOCOL": "url_scheme",
    "WS_PATH": "url_path_prefix",
    "OCPP_VERSION": "protocol_subtype",
}

RANGES = (
    ("reconnect_count_min", "reconnect_count_max"),
    ("disconnect_delay_min_ms", "disconnect_delay_max_ms"),
    ("inter_cycle_sleep_min_ms", "inter_cycle_sleep_max_ms"),
)


class SimulatorConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    transport_host: str = "central-system"
    transport_port: int = Field(default=8887, ge=1, le=65535)
    url_scheme: str = "ws"
    url_path_prefix: str = ""
    protocol_subtype: ProtocolSubtype = ProtocolSubtype.OCPP16

    reconnect_count_min: int = Field(default=3, ge=1)
    reconnect_count_max: int = Field(default=8, ge=1)
    disconnect_delay_min_ms: int = Field(default=100, ge=0)
    disconnect_delay_max_ms: int = Field(default=200, ge=0)
    inter_cycle_sleep_min_ms: int = Field(default=50, ge=0)
    inter_cycle_sleep_max_ms: int = Field(default=100, ge=0)

    keepalive_interval_ms: Optional[int] = Field(default=None, gt=0)
    open_timeout_ms: int = Field(default=5000, gt=0)
    close_timeout_ms: int = Field(default=1000, gt=0)
    connect_time_threshold_ms: int = Field(default=200, gt=0)
    send_status_notification: bool = False
    session_start_spread_ms: int = Field(default=0, ge=0)
    seed: Optional[int] = None

    @model_validator(mode="after")
    def _check_ranges(self) -> "SimulatorConfig":
        for low, high in RANGES:
            if getattr(self, low) > getattr(self, high):
                raise ValueError(f"{to_camel(low)} must not exceed {to_camel(high)}")
        return self

    @property
    def subprotocol(self) -> str:
        return self.protocol_subtype.value


def _read_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _from_env(env: Mapping[str, str]) -> dict[str, Any]:
    return {field: env[var] for var, field in ENV_VARS.items() if env.get(var)}


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SimulatorConfig:
    """Build the effective configuration. Raises ConfigError on invalid values."""
    values: dict[str, Any] = {}
    for key, value in _read_file(Path(path) if path else CONFIG_FILE).items():
        values[_field_name(key)] = value
    values.update(_from_env(os.environ if env is None else env))
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    try:
        return SimulatorConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


def _field_name(key: str) -> str:
    """Map a camelCase file key onto its field name; unknown keys pass through."""
    for name, field in SimulatorConfig.model_fields.items():
        if key in (name, field.alias):
            return name
    return key
