import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import NoReturn, TypedDict, cast

import yaml

from .errors import ConfigurationError


class RawAppConfig(TypedDict):
    excludes: list[str]
    max_workers: int
    max_inflight: int
    chunk_size: int


class RawConfigFile(TypedDict):
    config: RawAppConfig


CONFIG_FILENAME: Path = Path("treecmp.yaml")

DEFAULT_MAX_INFLIGHT: int = 200
DEFAULT_CHUNK_SIZE: int = 1024 * 1024


def default_max_workers() -> int:
    return os.cpu_count() or 1


def type_error(key: str, value: object) -> NoReturn:
    raise ConfigurationError(f"Unexpected value of wrong type for {key!r}: {value!r}")


def parse_chunk_size(value: str) -> int:
    # Normalize
    text: str = value.strip().upper()
    if not text:
        raise ValueError("Chunk size is empty.")

    last_char: str = text[-1]
    # Match "[number][optional suffix]"
    if last_char in {"K", "M", "G"}:
        number: str = text[:-1]
        suffix: str | None = last_char
    else:
        number = text
        suffix = None

    try:
        base: int = int(number)
    except ValueError:
        raise ValueError("Specified chunk size is not a number. Only K, M and G are allowed suffixes.")

    if base <= 0:
        raise ValueError("Chunk size must be > 0")

    if suffix == "K":
        return base * 1024
    elif suffix == "M":
        return base * 1024 * 1024
    elif suffix == "G":
        return base * 1024 * 1024 * 1024
    else:
        return base


def _positive_int(cfg: dict[str, object], key: str, default: int) -> int:
    value: object = cfg.get(key, default)
    # bool is an int subclass; `max_workers: yes` is not a worker count
    if not isinstance(value, int) or isinstance(value, bool):
        type_error(key, value)
    if value <= 0:
        raise ConfigurationError(f"{key} must be > 0, got {value}")
    return value


@dataclass(slots=True)
class AppConfig:
    excludes: list[str] = field(default_factory=list)
    max_workers: int = field(default_factory=default_max_workers)
    max_inflight: int = DEFAULT_MAX_INFLIGHT
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @staticmethod
    def load(path: Path = CONFIG_FILENAME) -> "AppConfig":
        if not path.exists():
            raise ConfigurationError(f"Missing config file {path}. Run treecmp init first.")

        try:
            with path.open("r", encoding="UTF-8") as f:
                raw_loaded_obj: object | None = cast(object, yaml.safe_load(f))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Config file {path} is not valid YAML: {e}")
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}")

        if not raw_loaded_obj:
            raise ConfigurationError("Config file is empty or invalid YAML.")

        if not isinstance(raw_loaded_obj, dict):
            type_error("<root>", raw_loaded_obj)

        raw_dict: dict[str, object] = cast(dict[str, object], raw_loaded_obj)

        cfg_raw: object | None = raw_dict.get("config")
        if not isinstance(cfg_raw, dict):
            type_error("config", cfg_raw)

        cfg: dict[str, object] = cast(dict[str, object], cfg_raw)

        excludes: object = cfg.get("excludes") or []
        if not isinstance(excludes, list) or not all(isinstance(p, str) for p in excludes):
            type_error("excludes", excludes)

        appConfig: AppConfig = AppConfig(
            excludes=cast(list[str], excludes),
            max_workers=_positive_int(cfg, "max_workers", default_max_workers()),
            max_inflight=_positive_int(cfg, "max_inflight", DEFAULT_MAX_INFLIGHT),
            chunk_size=_positive_int(cfg, "chunk_size", DEFAULT_CHUNK_SIZE),
        )

        return appConfig

    @staticmethod
    def load_or_default(path: Path = CONFIG_FILENAME) -> "AppConfig":
        if not path.exists():
            return AppConfig()
        return AppConfig.load(path)

    def save(self, path: Path = CONFIG_FILENAME) -> None:
        raw: RawConfigFile = {"config": self.to_raw()}
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(raw, f, sort_keys=False)

    def to_raw(self) -> RawAppConfig:
        return {
            "excludes": list(self.excludes),
            "max_workers": self.max_workers,
            "max_inflight": self.max_inflight,
            "chunk_size": self.chunk_size,
        }
