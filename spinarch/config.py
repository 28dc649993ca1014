import json
from dataclasses import dataclass
from pathlib import Path

from spinarch.errors import ConfigError

SPINARCH_HOME = Path.home() / ".spinarch"
GLOBAL_CONFIG_FILE = SPINARCH_HOME / "config.json"

DEFAULT_CONFIG = {
    "chain_id": "spinarch-1",
    "num_accounts": 10,
    "balance": 1_000_000_000,
    "stake_denom": "stake",
    "image": "archwaynetwork/archwayd",
    "helper_image": "alpine:latest",
    # Optional: path to a local archwayd build for the native runner
    "native_binary": "",
    "stop_timeout": 10,
}

INT_KEYS = {"num_accounts", "balance", "stop_timeout"}


@dataclass(frozen=True)
class DevnetSettings:
    chain_id: str
    num_accounts: int
    balance: int
    stake_denom: str
    image: str
    helper_image: str
    native_binary: str
    stop_timeout: float


def load_global_config():
    """Load ~/.spinarch/config.json, the defaults saved with `spinarch config`."""
    if not GLOBAL_CONFIG_FILE.exists():
        return {}
    try:
        return json.loads(GLOBAL_CONFIG_FILE.read_text())
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {GLOBAL_CONFIG_FILE}: {e}")


def save_global_config(updates):
    """Merge updates into ~/.spinarch/config.json."""
    unknown = set(updates) - set(DEFAULT_CONFIG)
    if unknown:
        raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
    existing = load_global_config()
    existing.update(updates)
    GLOBAL_CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    GLOBAL_CONFIG_FILE.write_text(json.dumps(existing, indent=2) + "\n")


def load_config():
    # Merge order: defaults → global config
    return {**DEFAULT_CONFIG, **load_global_config()}


def coerce_value(key, value):
    """Convert a raw string from the command line to the config value type."""
    if key not in DEFAULT_CONFIG:
        raise ConfigError(f"Unknown config key: {key}")
    if key in INT_KEYS:
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got {value!r}")
    return value


def resolve_settings(config=None, **overrides):
    """Build validated settings. Overrides that are None fall back to config."""
    merged = dict(config if config is not None else load_config())
    merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        num_accounts = int(merged["num_accounts"])
        balance = int(merged["balance"])
        stop_timeout = float(merged["stop_timeout"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid numeric setting: {e}")

    if num_accounts < 1:
        raise ConfigError("Number of accounts to generate must be greater than 0")
    if balance < 1:
        raise ConfigError("Account balance must be greater than 0")
    if stop_timeout <= 0:
        raise ConfigError("stop_timeout must be greater than 0")
    if not merged["chain_id"]:
        raise ConfigError("chain_id must not be empty")

    return DevnetSettings(
        chain_id=str(merged["chain_id"]),
        num_accounts=num_accounts,
        balance=balance,
        stake_denom=str(merged["stake_denom"]),
        image=str(merged["image"]),
        helper_image=str(merged["helper_image"]),
        native_binary=str(merged.get("native_binary") or ""),
        stop_timeout=stop_timeout,
    )
