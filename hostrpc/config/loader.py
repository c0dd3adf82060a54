"""Read and write the JSON config file.

The file is stored with camelCase keys, matching the wire format of payloads;
the schema uses snake_case field names. Environment overrides are applied by
pydantic-settings when the root model is built.
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic.alias_generators import to_camel, to_snake

from hostrpc.config.schema import Config


def get_config_path() -> Path:
    return Path.home() / ".hostrpc" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Build the config from ``config_path`` (default ``~/.hostrpc/config.json``).

    A missing file yields defaults plus environment overrides. A file that is
    not JSON, or whose values fail validation, raises ``ValueError``.
    """
    path = config_path or get_config_path()
    if not path.is_file():
        logger.debug("No config at {}, using defaults", path)
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError("top level must be an object")
        return Config.model_validate(convert_keys(raw))
    except ValueError as exc:
        # JSONDecodeError and pydantic's ValidationError are both ValueErrors
        raise ValueError(f"Invalid config file {path}: {exc}") from exc


def save_config(config: Config, config_path: Path | None = None) -> Path:
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = convert_to_camel(config.model_dump(mode="json"))
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    logger.debug("Config written to {}", path)
    return path


def _rename_keys(data: Any, rename: Callable[[str], str]) -> Any:
    if isinstance(data, dict):
        return {rename(key): _rename_keys(value, rename) for key, value in data.items()}
    if isinstance(data, list):
        return [_rename_keys(item, rename) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """camelCase keys -> snake_case, recursively through dicts and lists."""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    return _rename_keys(data, snake_to_camel)


def camel_to_snake(name: str) -> str:
    return to_snake(name)


def snake_to_camel(name: str) -> str:
    return to_camel(name)
