"""Configuration loader for geneosctl.

Configuration values are read from several sources, later sources winning:

1. Built-in defaults.
2. ``~/.config/geneosctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``GENEOSCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export GENEOSCTL_GENEOS_ROOT=/opt/itrs
    export GENEOSCTL_SSH__CONNECT_TIMEOUT=5
    export GENEOSCTL_SETTINGS__GATEWAYPORTRANGE=7039,7100-7200

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load geneosctl configuration. Install with "
        "`pip install geneosctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "GENEOSCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

DEFAULT_PRIVATE_KEYS = (
    "id_rsa",
    "id_ecdsa",
    "id_ecdsa_sk",
    "id_ed25519",
    "id_ed25519_sk",
    "id_dsa",
)


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SSHConfig:
    """Remote shell connection defaults applied to every remote host."""

    port: int = 22
    username: str | None = None
    private_keys: tuple[str, ...] = DEFAULT_PRIVATE_KEYS
    known_hosts: Path = Path("~/.ssh/known_hosts").expanduser()
    connect_timeout: float = 10.0
    strict_host_keys: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "port": self.port,
            "username": self.username,
            "private_keys": list(self.private_keys),
            "known_hosts": str(self.known_hosts),
            "connect_timeout": self.connect_timeout,
            "strict_host_keys": self.strict_host_keys,
        }


@dataclass(frozen=True)
class StopConfig:
    """Polling behaviour used when stopping instance processes."""

    grace_period: float = 0.25
    attempts: int = 10

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"grace_period": self.grace_period, "attempts": self.attempts}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for geneosctl."""

    config_file: Path
    geneos_root: Path
    hosts_dir: Path
    logs_dir: Path
    templates_dir: Path | None
    default_user: str | None
    reserved_names: tuple[str, ...]
    active_link: str
    ssh: SSHConfig
    stop: StopConfig
    settings: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "geneos_root": str(self.geneos_root),
            "hosts_dir": str(self.hosts_dir),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "default_user": self.default_user,
            "reserved_names": list(self.reserved_names),
            "active_link": self.active_link,
            "ssh": self.ssh.to_dict(),
            "stop": self.stop.to_dict(),
            "settings": dict(self.settings),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/geneosctl/config.yml",
    "geneos_root": "~/geneos",
    "hosts_dir": None,  # derived from geneos_root when absent
    "logs_dir": "~/.local/state/geneosctl",
    "templates_dir": None,
    "default_user": None,
    "reserved_names": [],
    "active_link": "active_prod",
    "ssh": {
        "port": 22,
        "username": None,
        "private_keys": list(DEFAULT_PRIVATE_KEYS),
        "known_hosts": "~/.ssh/known_hosts",
        "connect_timeout": 10.0,
        "strict_host_keys": False,
    },
    "stop": {
        "grace_period": 0.25,
        "attempts": 10,
    },
    "settings": {},
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SSH_KEYS = {
    "port",
    "username",
    "private_keys",
    "known_hosts",
    "connect_timeout",
    "strict_host_keys",
}
ALLOWED_STOP_KEYS = {"grace_period", "attempts"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    ssh = raw.get("ssh")
    if ssh is not None:
        unknown = set(_as_dict(ssh, "ssh").keys()) - ALLOWED_SSH_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown ssh configuration keys: {joined}.")

    stop = raw.get("stop")
    if stop is not None:
        unknown = set(_as_dict(stop, "stop").keys()) - ALLOWED_STOP_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown stop configuration keys: {joined}.")

    active_link = raw.get("active_link")
    if active_link is not None:
        link = str(active_link)
        if not link or "/" in link or link in {".", ".."}:
            raise ConfigError(f"active_link must be a plain file name. Got {active_link!r}.")

    _as_dict(raw.get("settings"), "settings")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    geneos_root = _to_path(raw.get("geneos_root"))
    hosts_dir_value = raw.get("hosts_dir")
    hosts_dir = _to_path(hosts_dir_value) if hosts_dir_value else geneos_root / "hosts"
    logs_dir = _to_path(raw.get("logs_dir"))
    templates_value = raw.get("templates_dir")
    templates_dir = _to_path(templates_value) if templates_value else None

    default_user_value = raw.get("default_user")
    default_user = str(default_user_value) if default_user_value else None

    ssh_mapping = _as_dict(raw.get("ssh"), "ssh")
    ssh_port = _expect_int(ssh_mapping.get("port"), "ssh.port", default=22)
    if not 0 < ssh_port < 65536:
        raise ConfigError(f"ssh.port must be between 1 and 65535. Got {ssh_port}.")
    username_value = ssh_mapping.get("username")
    ssh = SSHConfig(
        port=ssh_port,
        username=str(username_value) if username_value else None,
        private_keys=_name_list(
            ssh_mapping.get("private_keys", list(DEFAULT_PRIVATE_KEYS)),
            "ssh.private_keys",
        ),
        known_hosts=_to_path(ssh_mapping.get("known_hosts", "~/.ssh/known_hosts")),
        connect_timeout=_expect_positive_float(
            ssh_mapping.get("connect_timeout"), "ssh.connect_timeout", default=10.0
        ),
        strict_host_keys=bool(ssh_mapping.get("strict_host_keys", False)),
    )

    stop_mapping = _as_dict(raw.get("stop"), "stop")
    attempts = _expect_int(stop_mapping.get("attempts"), "stop.attempts", default=10)
    if attempts < 0:
        raise ConfigError("stop.attempts must be non-negative.")
    stop = StopConfig(
        grace_period=_expect_positive_float(
            stop_mapping.get("grace_period"), "stop.grace_period", default=0.25
        ),
        attempts=attempts,
    )

    return AppConfig(
        config_file=config_file,
        geneos_root=geneos_root,
        hosts_dir=hosts_dir,
        logs_dir=logs_dir,
        templates_dir=templates_dir,
        default_user=default_user,
        reserved_names=_name_list(raw.get("reserved_names", []), "reserved_names"),
        active_link=str(raw.get("active_link") or "active_prod"),
        ssh=ssh,
        stop=stop,
        settings=dict(_as_dict(raw.get("settings"), "settings")),
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_dict(value: object, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    return {str(key): item for key, item in value.items()}


def _name_list(value: object, label: str) -> tuple[str, ...]:
    """Accept a YAML list or a comma/colon separated string of names."""
    if value is None:
        return ()
    if isinstance(value, str):
        pieces = value.replace(":", ",").split(",")
    elif isinstance(value, Sequence):
        pieces = [str(item) for item in value]
    else:
        raise ConfigError(f"Expected {label} to be a list or string. Got {type(value).__name__}.")
    return tuple(piece.strip() for piece in pieces if piece.strip())


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(f"Expected {label} to be a number. Got {type(value).__name__}.")
    if numeric < 0:
        raise ConfigError(f"{label} must be non-negative.")
    return numeric


__all__ = [
    "AppConfig",
    "ConfigError",
    "SSHConfig",
    "StopConfig",
    "load_config",
]
