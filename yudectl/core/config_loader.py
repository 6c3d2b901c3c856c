"""Settings loading and validation for the optional YAML config file."""

from __future__ import annotations

import functools
import json
import logging
import os
from dataclasses import dataclass, replace
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from yudectl.core.errors import ConfigError
from yudectl.core.model import PollPolicy, Settings

LOGGER = logging.getLogger(__name__)


_BOOL_TAG = "tag:yaml.org,2002:bool"
_SCHEMA_NAME = "config.schema.json"


class SettingsLoader(yaml.SafeLoader):
    """Safe loader for settings: no yes/no booleans, no repeated keys."""

    yaml_implicit_resolvers = {
        first_char: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
        for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise ConfigError(f"Duplicate key '{key}' at line {key_node.start_mark.line + 1}")
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    source: Path | None
    warnings: tuple[str, ...]


@functools.cache
def _settings_validator() -> Any:
    schema = json.loads(
        resources.files("yudectl.schemas").joinpath(_SCHEMA_NAME).read_text(encoding="utf-8")
    )
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "yudectl/config.yaml"


def _read_settings_doc(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as handle:
            doc = yaml.load(handle, Loader=SettingsLoader)
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ConfigError(f"Config file {path} must hold a mapping of settings")
    return doc


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigError(f"{context} must be boolean true/false")


def _build_settings(doc: dict[str, Any], source: Path) -> Settings:
    validator = _settings_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = Settings()
    poll_doc = doc.get("poll", {})
    poll = PollPolicy(
        max_reads=int(poll_doc.get("max_reads", defaults.poll.max_reads)),
        interval_s=float(poll_doc.get("interval_s", defaults.poll.interval_s)),
        backoff=float(poll_doc.get("backoff", defaults.poll.backoff)),
        max_interval_s=float(poll_doc.get("max_interval_s", defaults.poll.max_interval_s)),
    )
    return Settings(
        device=doc.get("device", defaults.device),
        scan_duration_s=float(doc.get("scan_duration_s", defaults.scan_duration_s)),
        mtu=int(doc.get("mtu", defaults.mtu)),
        write_with_response=_normalize_bool(
            doc.get("write_with_response", defaults.write_with_response),
            context="write_with_response",
        ),
        poll=poll,
    )


def load_settings(
    path: Path | None = None,
    *,
    device: str | None = None,
    scan_duration_s: float | None = None,
) -> LoadedSettings:
    """Resolve settings: defaults, then the config file, then explicit overrides.

    An explicit ``path`` must exist; the default XDG location is optional.
    """
    warnings: list[str] = []
    source: Path | None = None
    settings = Settings()

    candidate = path or default_config_path()
    if path is not None or candidate.is_file():
        source = candidate
        settings = _build_settings(_read_settings_doc(candidate), candidate)
        LOGGER.debug("Loaded settings from %s", candidate)

    if device is not None:
        settings = replace(settings, device=device)
    if scan_duration_s is not None:
        if scan_duration_s < 0:
            raise ConfigError("scan duration must be >= 0 (0 scans until interrupted)")
        settings = replace(settings, scan_duration_s=scan_duration_s)

    if settings.poll.max_interval_s < settings.poll.interval_s:
        warning = "poll.max_interval_s is below poll.interval_s; delays are capped at poll.max_interval_s"
        LOGGER.warning(warning)
        warnings.append(warning)

    return LoadedSettings(settings=settings, source=source, warnings=tuple(warnings))
