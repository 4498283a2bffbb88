"""
Runtime settings: RPC endpoint, network selection, artifact/deployment
locations, sender identity, confirmation policy, gas limits and logging.

Resolution order (later wins):

  1. built-in defaults
  2. a JSON or YAML file named by `SVGNFT_CONFIG_FILE` (keys are the field names)
  3. environment variables (SVGNFT_*)
  4. explicit overrides (`Settings.with_overrides`, used by the CLI flags)

Environment variables:

  SVGNFT_RPC_URL           (http/https)        default http://127.0.0.1:8545
  SVGNFT_NETWORK           network name from the network table (optional)
  SVGNFT_NETWORKS_FILE     YAML/JSON network table (default: bundled table)
  SVGNFT_ARTIFACTS_DIR     Hardhat artifacts root  default ./artifacts
  SVGNFT_DEPLOYMENTS_DIR   deployment records root default ./deployments
  SVGNFT_PRIVATE_KEY       hex key; when unset the node account is used
  SVGNFT_DEPLOYER_INDEX    index into eth_accounts (default 0)
  SVGNFT_CONFIRMATIONS     confirming blocks per tx (default 1)
  SVGNFT_TX_TIMEOUT        seconds to wait for confirmations (default 120)
  SVGNFT_POLL_INTERVAL     receipt polling interval seconds (default 0.5)
  SVGNFT_HTTP_TIMEOUT      HTTP timeout seconds (default 30)
  SVGNFT_MAX_RETRIES       transport retries per RPC call (default 3)
  SVGNFT_MINT_GAS_LIMIT    gas limit for the randomness mint (default 300000)
  SVGNFT_FINISH_GAS_LIMIT  gas limit for finishing the mint (default 2000000)
  SVGNFT_LOG_LEVEL         DEBUG|INFO|WARNING|ERROR (default INFO)
  SVGNFT_SAVE_DEPLOYMENTS  write deployment records to disk (default true)

File values go through the same type checks as environment values; a
mistyped value (e.g. `confirmations: [2]`) raises ValueError.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_DEFAULT_RPC = "http://127.0.0.1:8545"
_PREFIX = "SVGNFT_"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v not in (None, "") else default


def _ensure_http(url: Optional[str]) -> Optional[str]:
    if not url:
        return url
    if not url.lower().startswith(("http://", "https://")):
        raise ValueError(f"RPC URL must start with http:// or https://, got: {url!r}")
    return url


def _as_int(name: str, v: Any) -> int:
    try:
        return int(str(v).replace("_", ""))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _as_float(name: str, v: Any) -> float:
    try:
        return float(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid float for {name}: {v!r}") from e


def _as_str(name: str, v: Any) -> str:
    # YAML reads an unquoted 0x... key as an int
    if not isinstance(v, str):
        raise ValueError(f"Invalid string for {name}: {v!r} (quote it)")
    return v


def _as_bool(name: str, v: Any) -> bool:
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid bool for {name}: {v!r}")


_OPTIONAL_KEYS = ("network", "networks_file", "private_key")
_INT_KEYS = ("deployer_index", "confirmations", "max_retries", "mint_gas_limit", "finish_gas_limit")
_FLOAT_KEYS = ("tx_timeout", "poll_interval", "http_timeout")
_BOOL_KEYS = ("save_deployments",)


def _coerce(key: str, v: Any, name: str) -> Any:
    """Type-check one settings value; `name` says where it came from."""
    if v is None:
        if key in _OPTIONAL_KEYS:
            return None
        raise ValueError(f"Missing value for {name}")
    if key in _INT_KEYS:
        if isinstance(v, bool):
            raise ValueError(f"Invalid int for {name}: {v!r}")
        return _as_int(name, v)
    if key in _FLOAT_KEYS:
        if isinstance(v, bool):
            raise ValueError(f"Invalid float for {name}: {v!r}")
        return _as_float(name, v)
    if key in _BOOL_KEYS:
        return _as_bool(name, v)
    return _as_str(name, v)


def load_file(path: os.PathLike[str] | str) -> Dict[str, Any]:
    """Load a settings mapping from a .json / .yaml / .yml file."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"{p}: expected a mapping at the top level")
    return data


@dataclass
class Settings:
    # Endpoint / network
    rpc_url: str = _DEFAULT_RPC
    network: Optional[str] = None
    networks_file: Optional[str] = None
    # Filesystem
    artifacts_dir: str = "artifacts"
    deployments_dir: str = "deployments"
    save_deployments: bool = True
    # Sender
    private_key: Optional[str] = field(default=None, repr=False)
    deployer_index: int = 0
    # Confirmation policy
    confirmations: int = 1
    tx_timeout: float = 120.0
    poll_interval: float = 0.5
    # HTTP behavior
    http_timeout: float = 30.0
    max_retries: int = 3
    # Gas
    mint_gas_limit: int = 300_000
    finish_gas_limit: int = 2_000_000
    # Logging
    log_level: str = "INFO"

    def validate(self) -> None:
        _ensure_http(self.rpc_url)
        if self.confirmations < 1:
            raise ValueError("confirmations must be >= 1")
        if self.tx_timeout <= 0 or self.poll_interval <= 0 or self.http_timeout <= 0:
            raise ValueError("timeouts and poll interval must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.deployer_index < 0:
            raise ValueError("deployer_index must be >= 0")
        if self.mint_gas_limit <= 0 or self.finish_gas_limit <= 0:
            raise ValueError("gas limits must be positive")

    @classmethod
    def from_env(cls, prefix: str = _PREFIX, config_file: Optional[str] = None) -> "Settings":
        """
        Build settings from defaults, the config file (`config_file` or
        SVGNFT_CONFIG_FILE) and SVGNFT_* variables.
        """
        data = cls().to_dict()
        cfg_file = config_file or _env(f"{prefix}CONFIG_FILE")
        if cfg_file:
            for key, v in load_file(cfg_file).items():
                if key in data:
                    data[key] = _coerce(key, v, f"{key} in {cfg_file}")

        for key in data:
            name = f"{prefix}{key.upper()}"
            v = _env(name)
            if v is not None:
                data[key] = _coerce(key, v, name)

        cfg = cls(**data)
        cfg.validate()
        return cfg

    @classmethod
    def with_overrides(cls, base: Optional["Settings"] = None, **overrides: Any) -> "Settings":
        """
        Build from an existing settings object plus keyword overrides.
        Unknown keys and None values are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data and v is not None})
        cfg = cls(**data)
        cfg.validate()
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def public_dict(self) -> Dict[str, Any]:
        """Same as to_dict() with secrets masked, suitable for printing."""
        d = self.to_dict()
        if d.get("private_key"):
            d["private_key"] = "***"
        return d


__all__ = ["Settings", "load_file"]
