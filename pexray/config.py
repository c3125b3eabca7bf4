from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel


class Limits(BaseModel):
    # Files above this size are rejected before decoding.
    max_input_bytes: int = 200_000_000

    # Upper bound for `pexray sections --dump`.
    max_dump_bytes: int = 4096


class LogCfg(BaseModel):
    level: str = "WARNING"


class AppConfig(BaseModel):
    schema_version: str = "1.0"
    limits: Limits = Limits()
    log: LogCfg = LogCfg()


def load_config(path: Optional[str]) -> AppConfig:
    if not path:
        return AppConfig()
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    return AppConfig.model_validate(data)


def config_to_snapshot(cfg: AppConfig) -> Dict[str, Any]:
    return cfg.model_dump()
