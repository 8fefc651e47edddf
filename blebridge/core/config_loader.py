"""Configuration loading and validation for YAML-based blebridge settings."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from blebridge.core.errors import ConfigLoadError, ConfigValidationError
from blebridge.core.model import (
    AppConfig,
    BridgeConfig,
    CharacteristicConfig,
    DisplayType,
    PresentationFormat,
)

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedConfig:
    config: AppConfig
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("blebridge.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def user_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "blebridge/config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _validate(doc: dict[str, Any], source: Path | Traversable) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    if len(normalized) == 4:
        normalized = f"0000{normalized}"
    if len(normalized) == 8:
        normalized = f"{normalized}{_BASE_UUID_SUFFIX}"
    return normalized


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false")


def parse_presentation_hint(value: str, *, context: str) -> PresentationFormat:
    try:
        return PresentationFormat.from_name(value)
    except KeyError:
        allowed = ", ".join(f.name.lower() for f in PresentationFormat)
        raise ConfigValidationError(
            f"{context} must be one of: {allowed}"
        ) from None


def _merge(
    base: dict[str, Any],
    override: dict[str, Any],
    overridden: list[str],
    prefix: str = "",
) -> dict[str, Any]:
    """Deep-merge ``override`` into ``base``, recording changed default keys as dotted paths."""
    merged = dict(base)
    for key, value in override.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value, overridden, f"{dotted}.")
            continue
        if key in merged and merged[key] != value:
            overridden.append(dotted)
        merged[key] = value
    return merged


def _build_config(doc: dict[str, Any]) -> AppConfig:
    bridge_doc = doc.get("bridge", {})
    bridge = BridgeConfig(
        host=str(bridge_doc.get("host", BridgeConfig.host)),
        port=int(bridge_doc.get("port", BridgeConfig.port)),
        period_ms=float(bridge_doc.get("period_ms", BridgeConfig.period_ms)),
        start_delay_s=float(bridge_doc.get("start_delay_s", BridgeConfig.start_delay_s)),
        close_grace_s=float(bridge_doc.get("close_grace_s", BridgeConfig.close_grace_s)),
        connect_timeout_s=float(bridge_doc.get("connect_timeout_s", BridgeConfig.connect_timeout_s)),
        write_timeout_s=float(bridge_doc.get("write_timeout_s", BridgeConfig.write_timeout_s)),
        queue_warn_threshold=int(bridge_doc.get("queue_warn_threshold", BridgeConfig.queue_warn_threshold)),
    )

    characteristics: dict[str, CharacteristicConfig] = {}
    for raw_uuid, spec in (doc.get("characteristics") or {}).items():
        uuid = normalize_uuid(str(raw_uuid), context=f"characteristics.{raw_uuid}")
        hint = None
        if "presentation_hint" in spec:
            hint = parse_presentation_hint(
                spec["presentation_hint"],
                context=f"characteristics.{raw_uuid}.presentation_hint",
            )
        characteristics[uuid] = CharacteristicConfig(
            presentation_hint=hint,
            display_type=DisplayType(spec.get("display_type", DisplayType.UNSET.value)),
        )

    return AppConfig(
        bridge=bridge,
        use_cached_reads=_normalize_bool(
            doc.get("reads", {}).get("use_cached", True),
            context="reads.use_cached",
        ),
        characteristics=characteristics,
    )


def load_config(path: Path | None = None) -> LoadedConfig:
    """Load packaged defaults, then overlay ``path`` or the user config file if present."""
    warnings: list[str] = []

    default_path = resources.files("blebridge.defaults").joinpath("config.yaml")
    doc = _read_yaml(default_path)
    _validate(doc, default_path)

    override_path = path if path is not None else user_config_path()
    if path is not None and not path.exists():
        raise ConfigLoadError(f"Config file {path} does not exist")

    if override_path.exists():
        override = _read_yaml(override_path)
        _validate(override, override_path)
        overridden: list[str] = []
        doc = _merge(doc, override, overridden)
        LOGGER.debug("loaded config overrides from %s", override_path)
        for key in overridden:
            warning = f"User config {override_path} overrides packaged default '{key}'"
            LOGGER.warning(warning)
            warnings.append(warning)

    config = _build_config(doc)
    for uuid, spec in config.characteristics.items():
        if spec.presentation_hint is not None and spec.display_type is not DisplayType.UNSET:
            warning = f"Characteristic '{uuid}' forces display_type; its presentation_hint is ignored"
            LOGGER.warning(warning)
            warnings.append(warning)

    return LoadedConfig(config=config, warnings=tuple(warnings))
