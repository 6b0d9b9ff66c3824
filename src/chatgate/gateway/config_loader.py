from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Union, get_args, get_type_hints

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .config import GatewayConfig, ProviderSettings

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "CHATGATE_CONFIG_FILE"
ENV_PREFIX = "CHATGATE_"
PROVIDER_KEY_ENV = "CHATGATE_PROVIDER_{}_API_KEY"
DEFAULT_CONFIG_PATH = Path("configs/chatgate.toml")

_SECTION_MAP: dict[str, list[str]] = {
    "server": ["host", "port", "cors_origins"],
    "logging": ["log_path", "max_log_bytes", "log_requests"],
    "timeouts": ["provider_timeout_ms"],
    "ids": ["id_strategy"],
}

_PROVIDER_KEYS = ("kind", "base_url", "api_key", "models", "owned_by", "enabled")
_ID_STRATEGIES = {"random", "counter"}
_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _field_types() -> dict[str, Any]:
    return get_type_hints(GatewayConfig)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return int(str(value))


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _coerce_optional(value: Any, caster: Callable[[Any], Any]) -> Any:
    if value in ("", None):
        return None
    return caster(value)


_CASTERS: dict[Any, Callable[[Any], Any]] = {
    bool: _coerce_bool,
    int: _coerce_int,
    str: _coerce_str,
}


def _coerce_value(field_type: Any, value: Any) -> Any:
    origin = getattr(field_type, "__origin__", None)
    if origin is None:
        caster = _CASTERS.get(field_type)
        if caster:
            return caster(value)
        return value

    if origin is list:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [str(item) for item in value]

    if origin is Union:
        args = [arg for arg in get_args(field_type) if arg is not type(None)]
        if len(args) == 1:
            caster = _CASTERS.get(args[0])
            if caster:
                return _coerce_optional(value, caster)
    return value


def _parse_provider(provider_id: str, raw: Any) -> ProviderSettings | None:
    if not isinstance(raw, dict):
        logger.warning(
            "[config] Ignoring provider '%s': expected a table, got %s",
            provider_id,
            type(raw).__name__,
        )
        return None
    models = raw.get("models") or []
    if isinstance(models, str):
        models = [models]
    return ProviderSettings(
        id=provider_id,
        kind=_coerce_str(raw.get("kind") or "openai").strip().lower(),
        base_url=_coerce_optional(raw.get("base_url"), _coerce_str),
        api_key=_coerce_optional(raw.get("api_key"), _coerce_str),
        models=[str(m) for m in models if str(m).strip()],
        owned_by=_coerce_optional(raw.get("owned_by"), _coerce_str),
        enabled=_coerce_bool(raw.get("enabled", True)),
    )


def _read_providers(data: dict[str, Any]) -> dict[str, ProviderSettings] | None:
    section = data.get("providers")
    if section is None:
        return None
    if not isinstance(section, dict):
        logger.warning("[config] Ignoring malformed [providers] section")
        return {}
    providers: dict[str, ProviderSettings] = {}
    for provider_id, raw in section.items():
        if ":" in provider_id:
            logger.warning(
                "[config] Ignoring provider '%s': ids must not contain ':'",
                provider_id,
            )
            continue
        parsed = _parse_provider(provider_id, raw)
        if parsed is not None:
            providers[provider_id] = parsed
    return providers


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        data = tomllib.load(fh)

    out: dict[str, Any] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = data.get(section, {})
        if not isinstance(section_values, dict):
            continue
        for key in keys:
            if key in section_values:
                out[key] = section_values[key]
    providers = _read_providers(data)
    if providers is not None:
        out["providers"] = providers
    return out


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    env = os.environ

    def env_bool(name: str, current: bool) -> bool:
        val = env.get(name)
        if val is None:
            return current
        return val.lower() in {"1", "true", "yes", "on"}

    def env_int(name: str, current: int) -> int:
        val = env.get(name)
        if val is None:
            return current
        try:
            return int(val)
        except ValueError:
            return current

    def env_str(name: str, current: str | None) -> str | None:
        val = env.get(name)
        if val is None:
            return current
        return val

    def env_list(name: str, current: list[str]) -> list[str]:
        val = env.get(name)
        if not val:
            return current
        parts = [item.strip() for item in val.split(",")]
        return [item for item in parts if item]

    overrides = {
        "host": env_str("CHATGATE_HOST", config["host"]),
        "port": env_int("CHATGATE_PORT", config["port"]),
        "cors_origins": env_list("CHATGATE_CORS_ORIGINS", config["cors_origins"]),
        "log_path": env_str("CHATGATE_LOG_PATH", config["log_path"]),
        "max_log_bytes": env_int("CHATGATE_MAX_LOG_BYTES", config["max_log_bytes"]),
        "log_requests": env_bool("CHATGATE_LOG_REQUESTS", config["log_requests"]),
        "provider_timeout_ms": env_int(
            "CHATGATE_PROVIDER_TIMEOUT_MS", config["provider_timeout_ms"]
        ),
        "id_strategy": env_str("CHATGATE_ID_STRATEGY", config["id_strategy"]),
    }
    config.update(overrides)

    # API keys are commonly injected through the environment rather than the file.
    for provider_id, settings in config.get("providers", {}).items():
        key_var = PROVIDER_KEY_ENV.format(provider_id.upper().replace("-", "_"))
        key = env.get(key_var)
        if key:
            settings.api_key = key
    return config


def _default_config_dict() -> dict[str, Any]:
    data = asdict(GatewayConfig())
    data.pop("config_file_path", None)
    data.pop("providers", None)
    return data


def _normalize(config: dict[str, Any]) -> dict[str, Any]:
    field_types = _field_types()
    normalized = {}
    for key, default_value in _default_config_dict().items():
        value = config.get(key, default_value)
        field_type = field_types.get(key)
        try:
            normalized[key] = _coerce_value(field_type, value)
        except Exception:  # noqa: BLE001
            logger.warning(
                "[config] Invalid value %r for '%s'; using default %r",
                value,
                key,
                default_value,
            )
            normalized[key] = default_value
    strategy = str(normalized.get("id_strategy") or "").strip().lower()
    normalized["id_strategy"] = strategy if strategy in _ID_STRATEGIES else "random"
    if "providers" in config:
        normalized["providers"] = dict(config["providers"])
    else:
        normalized["providers"] = GatewayConfig().providers
    return normalized


def _config_path() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_PATH)).expanduser()


def _ensure_config_file(path: Path) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    write_config(GatewayConfig(), path)


def load_file_config() -> dict[str, Any]:
    path = _config_path()
    _ensure_config_file(path)
    base = _default_config_dict()
    base.update(_read_config_file(path))
    normalized = _normalize(base)
    normalized["providers"] = {
        pid: asdict(settings) for pid, settings in normalized["providers"].items()
    }
    return normalized


def load_gateway_config() -> GatewayConfig:
    candidate = _config_path()
    _ensure_config_file(candidate)
    file_values = _read_config_file(candidate)
    normalized = _normalize(file_values)
    normalized = _apply_env_overrides(normalized)
    if normalized["id_strategy"] not in _ID_STRATEGIES:
        normalized["id_strategy"] = "random"
    cfg = GatewayConfig(**normalized)
    cfg.config_file_path = str(candidate)
    return cfg


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        inner = ", ".join(_format_value(item) for item in value)
        return f"[{inner}]"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return '""'
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _format_key(key: str) -> str:
    if _BARE_KEY.match(key):
        return key
    return _format_value(key)


def _ordered_sections(config: GatewayConfig) -> dict[str, dict[str, Any]]:
    config_dict = asdict(config)
    config_dict.pop("config_file_path", None)
    config_dict.pop("providers", None)
    sections: dict[str, dict[str, Any]] = {}
    for section, keys in _SECTION_MAP.items():
        section_values = {}
        for key in keys:
            if key in config_dict:
                section_values[key] = config_dict[key]
        if section_values:
            sections[section] = section_values
    for provider_id, settings in config.providers.items():
        values = asdict(settings)
        sections[f"providers.{_format_key(provider_id)}"] = {
            key: values[key]
            for key in _PROVIDER_KEYS
            if values[key] is not None or key == "kind"
        }
    return sections


def write_config(config: GatewayConfig, path: Path | None = None) -> None:
    path = Path(path or _config_path()).expanduser()
    sections = _ordered_sections(config)
    lines: list[str] = [
        "# chatgate configuration.",
        "# Generated automatically. Edit values as needed.",
    ]
    for section, values in sections.items():
        lines.append("")
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key} = {_format_value(value)}")

    tmp_fd, tmp_path = tempfile.mkstemp(
        prefix="chatgate_config_", suffix=".toml", dir=path.parent
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write("\n".join(lines) + "\n")
        Path(tmp_path).replace(path)
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass


def update_config_file(updates: dict[str, Any]) -> GatewayConfig:
    path = _config_path()
    _ensure_config_file(path)
    base = _default_config_dict()
    current_file = _read_config_file(path)
    base.update(current_file)

    unknown = [key for key in updates if key not in base]
    if unknown:
        raise KeyError(f"Unknown configuration field(s): {', '.join(sorted(unknown))}")

    base.update(updates)
    normalized = _normalize(base)
    file_config = GatewayConfig(**normalized)
    file_config.config_file_path = str(path)
    write_config(file_config, path)
    return load_gateway_config()


def list_env_overrides() -> dict[str, str]:
    return {
        key: ("***" if key.endswith("_API_KEY") else value)
        for key, value in os.environ.items()
        if key.startswith(ENV_PREFIX)
    }
