import signal
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

import pipevisor.settings as default_settings

log = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the supervisor configuration is missing or malformed."""


@dataclass(frozen=True)
class ChildDefinition:
    """A single supervised child, as described by the configuration file."""
    command: Tuple[str, ...]
    name: str
    is_startup_check: bool = False
    receives_sigusr1: bool = False
    receives_sigusr2: bool = False
    termination_signal: signal.Signals = signal.SIGTERM


@dataclass(frozen=True)
class SupervisorConfig:
    """
    The immutable table handed to the supervisor at startup.

    Children keep the order they were declared in; that order is the index
    used by the process table for the whole run.
    """
    children: Tuple[ChildDefinition, ...] = field(default_factory=tuple)
    shutdown_timeout: int = default_settings.SHUTDOWN_TIMEOUT
    max_line_length: int = default_settings.MAX_LINE_LENGTH

    def __post_init__(self) -> None:
        if self.shutdown_timeout < 1:
            raise ConfigError(f"shutdown_timeout must be a positive number of seconds, got {self.shutdown_timeout}")
        if self.max_line_length < 1:
            raise ConfigError(f"max_line_length must be at least 1, got {self.max_line_length}")


def parse_signal(value: Union[str, int]) -> signal.Signals:
    """
    Resolves a signal given by name ('SIGTERM', 'term') or by number.

    :param value: The raw value from the configuration file.
    :return: The matching signal.Signals member.
    :raises ConfigError: If the value does not name a signal of this platform.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid signal: {value!r}")
    if isinstance(value, int):
        try:
            return signal.Signals(value)
        except ValueError:
            raise ConfigError(f"Unknown signal number: {value}") from None

    name = str(value).strip().upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return signal.Signals[name]
    except KeyError:
        raise ConfigError(f"Unknown signal name: {value!r}") from None


def _require_bool(entry: Dict[str, Any], key: str, child_name: str) -> bool:
    value = entry.get(key, False)
    if not isinstance(value, bool):
        raise ConfigError(f"Child '{child_name}': '{key}' must be true or false, got {value!r}")
    return value


def parse_child(entry: Any, index: int) -> ChildDefinition:
    """
    Builds a ChildDefinition from one entry of the `children` list.

    :param entry: The mapping read from YAML.
    :param index: Position in the list, used in error messages.
    :return: The validated ChildDefinition.
    :raises ConfigError: On any missing or malformed field.
    """
    if not isinstance(entry, dict):
        raise ConfigError(f"Child #{index} must be a mapping, got {type(entry).__name__}")

    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"Child #{index} needs a non-empty 'name'")
    if name == default_settings.SYSTEM_TAG:
        raise ConfigError(f"Child #{index}: the name '{name}' is reserved for supervisor status lines")
    # Names become logger names; a dot would nest one child's logger under another.
    if "." in name:
        raise ConfigError(f"Child #{index}: 'name' must not contain '.', got {name!r}")

    command = entry.get("command")
    if isinstance(command, str) or not isinstance(command, list) or not command:
        raise ConfigError(f"Child '{name}': 'command' must be a non-empty list of strings")
    if not all(isinstance(part, str) for part in command):
        raise ConfigError(f"Child '{name}': every element of 'command' must be a string")

    termination_signal = parse_signal(
        entry.get("termination_signal", default_settings.DEFAULT_TERMINATION_SIGNAL)
    )

    unknown = set(entry) - {
        "name", "command", "is_startup_check", "receives_sigusr1",
        "receives_sigusr2", "termination_signal",
    }
    if unknown:
        log.warning(f"Child '{name}': ignoring unknown keys {sorted(unknown)}")

    return ChildDefinition(
        command=tuple(command),
        name=name,
        is_startup_check=_require_bool(entry, "is_startup_check", name),
        receives_sigusr1=_require_bool(entry, "receives_sigusr1", name),
        receives_sigusr2=_require_bool(entry, "receives_sigusr2", name),
        termination_signal=termination_signal,
    )


def _require_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    return value


def build_config(data: Optional[Dict[str, Any]]) -> SupervisorConfig:
    """
    Validates an already-parsed configuration mapping.

    Top-level keys override the defaults from settings.py.

    :param data: The mapping loaded from YAML (None is treated as empty).
    :return: The immutable SupervisorConfig.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("The configuration root must be a mapping")

    raw_children = data.get("children", [])
    if raw_children is None:
        raw_children = []
    if not isinstance(raw_children, list):
        raise ConfigError("'children' must be a list")

    children: List[ChildDefinition] = [parse_child(entry, i) for i, entry in enumerate(raw_children)]

    seen = set()
    for child in children:
        if child.name in seen:
            raise ConfigError(f"Duplicate child name '{child.name}'")
        seen.add(child.name)

    return SupervisorConfig(
        children=tuple(children),
        shutdown_timeout=_require_int(data, "shutdown_timeout", default_settings.SHUTDOWN_TIMEOUT),
        max_line_length=_require_int(data, "max_line_length", default_settings.MAX_LINE_LENGTH),
    )


def load_config(path: Optional[Path] = None) -> SupervisorConfig:
    """
    Loads the supervisor configuration from a YAML file.

    :param path: The file to read. Defaults to settings.CONFIG_PATH.
    :return: The immutable SupervisorConfig.
    :raises ConfigError: If the file cannot be read or does not validate.
    """
    config_path = Path(path) if path is not None else default_settings.CONFIG_PATH

    try:
        with config_path.open('r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file '{config_path}' does not exist") from None
    except (yaml.YAMLError, IOError) as e:
        raise ConfigError(f"Failed to load or parse configuration file '{config_path}': {e}") from e

    config = build_config(data)
    log.debug(f"Loaded {len(config.children)} child definitions from {config_path}")
    return config
