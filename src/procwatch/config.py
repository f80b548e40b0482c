"""Configuration loading, validation, and resolution for procwatch."""

import copy
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from procwatch.thresholds import METRIC_FIELDS, Thresholds

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")

_THRESHOLD_KEYS = ("warn_over", "crit_over", "warn_under", "crit_under")


DEFAULT_CONFIG: Dict[str, Any] = {
    "check": {
        "warn_over": 1,
        "crit_over": 1,
        "warn_under": 0,
        "crit_under": 0,
        "metric": None,
        "match_self": False,
        "match_parent": False,
        "cmd_pat": None,
        "pid_file": None,
        "vsz": None,
        "rss": None,
        "pcpu": None,
        "state": None,
        "user": None,
    },
}


class ConfigError(Exception):
    """The check configuration cannot be resolved."""


@dataclass(frozen=True)
class CheckConfig:
    """Fully resolved, read-only options for one check run."""
    warn_over: int = 1
    crit_over: int = 1
    warn_under: int = 0
    crit_under: int = 0
    metric: Optional[str] = None
    match_self: bool = False
    match_parent: bool = False
    cmd_pat: Optional[str] = None
    file_pid: Optional[int] = None
    vsz: Optional[int] = None
    rss: Optional[int] = None
    pcpu: Optional[float] = None
    state: Optional[Tuple[str, ...]] = None
    user: Optional[Tuple[str, ...]] = None

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(
            warn_over=self.warn_over,
            crit_over=self.crit_over,
            warn_under=self.warn_under,
            crit_under=self.crit_under,
        )


def default_config_path() -> Path:
    """Return the default config file path."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "procwatch" / "config.yaml"


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _expand_env_vars(obj):
    """Recursively expand ${VAR} references in string values."""
    if isinstance(obj, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), m.group(0)), obj)
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from YAML file, merged with defaults.

    String values containing ``${VAR}`` are expanded from environment
    variables.  Unset variables are left as-is.
    """
    path = path or default_config_path()
    if not path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(path, "r") as f:
        user_config = yaml.safe_load(f) or {}
    merged = deep_merge(DEFAULT_CONFIG, user_config)
    return _expand_env_vars(merged)


def apply_overrides(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Layer command-line values over the ``check`` section.

    ``None`` means the option was not given and the file value stands.
    """
    given = {k: v for k, v in overrides.items() if v is not None}
    return deep_merge(config, {"check": given})


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _split_list(value) -> Tuple[str, ...]:
    """Accept ``"Z,D"`` or ``["Z", "D"]``."""
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = value
    return tuple(str(item).strip() for item in items if str(item).strip())


def validate_config(config: Dict[str, Any]) -> list:
    """Validate config and return a list of error strings (empty = valid)."""
    errors = []
    check = config.get("check", {})
    if not isinstance(check, dict):
        return ["check must be a mapping"]

    for key in _THRESHOLD_KEYS:
        val = check.get(key)
        if not _is_int(val):
            errors.append(f"check.{key} must be an integer, got {val!r}")

    metric = check.get("metric")
    if metric is not None and metric not in METRIC_FIELDS:
        errors.append(
            f"check.metric must be one of: {', '.join(METRIC_FIELDS)}, got '{metric}'"
        )

    for key in ("match_self", "match_parent"):
        if not isinstance(check.get(key, False), bool):
            errors.append(f"check.{key} must be true or false")

    cmd_pat = check.get("cmd_pat")
    if cmd_pat is not None:
        if not isinstance(cmd_pat, str) or not cmd_pat:
            errors.append("check.cmd_pat must be a non-empty string")
        else:
            try:
                re.compile(cmd_pat)
            except re.error as e:
                errors.append(f"check.cmd_pat is not a valid regular expression: {e}")

    pid_file = check.get("pid_file")
    if pid_file is not None and (not isinstance(pid_file, str) or not pid_file.strip()):
        errors.append("check.pid_file must be a non-empty path")

    for key in ("vsz", "rss"):
        val = check.get(key)
        if val is not None and (not _is_int(val) or val < 0):
            errors.append(f"check.{key} must be a non-negative integer, got {val!r}")

    pcpu = check.get("pcpu")
    if pcpu is not None and (not _is_number(pcpu) or pcpu < 0):
        errors.append(f"check.pcpu must be a non-negative number, got {pcpu!r}")

    for key in ("state", "user"):
        val = check.get(key)
        if val is None:
            continue
        if not isinstance(val, (str, list)):
            errors.append(f"check.{key} must be a comma-separated string or a list")
        elif not _split_list(val):
            errors.append(f"check.{key} must name at least one value")

    return errors


def read_pid(path) -> int:
    """Read a pid from a pid file."""
    try:
        with open(path, "r") as f:
            return int(f.read().strip())
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read pid file {path}") from e


def resolve_config(config: Dict[str, Any]) -> CheckConfig:
    """Turn a validated config dict into a :class:`CheckConfig`.

    Raises :class:`ConfigError` if validation fails or the pid file
    cannot be read.
    """
    errors = validate_config(config)
    if errors:
        raise ConfigError("; ".join(errors))

    check = config.get("check", {})
    state = check.get("state")
    user = check.get("user")
    pcpu = check.get("pcpu")
    pid_file = check.get("pid_file")

    return CheckConfig(
        warn_over=check["warn_over"],
        crit_over=check["crit_over"],
        warn_under=check["warn_under"],
        crit_under=check["crit_under"],
        metric=check.get("metric"),
        match_self=check.get("match_self", False),
        match_parent=check.get("match_parent", False),
        cmd_pat=check.get("cmd_pat"),
        file_pid=read_pid(pid_file) if pid_file else None,
        vsz=check.get("vsz"),
        rss=check.get("rss"),
        pcpu=float(pcpu) if pcpu is not None else None,
        state=_split_list(state) if state is not None else None,
        user=_split_list(user) if user is not None else None,
    )
