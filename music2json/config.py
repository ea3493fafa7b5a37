from __future__ import annotations

import os
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .fs_utils import SUPPORTED_EXTENSIONS, normalize_extensions
from .models import ConfigurationError

ENV_MUSIC_PATH = "MUSIC_PATH"
ENV_OUTPUT_PATH = "OUTPUT_PATH"


class ScanSettings(BaseModel):
    music_dir: Optional[Path] = None
    output: Path = Path(".")
    limit: int = 0
    batch_size: int = Field(default=10, ge=1)
    include_extensions: List[str] = Field(default_factory=lambda: sorted(SUPPORTED_EXTENSIONS))
    probe_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    @field_validator("music_dir", mode="before")
    @classmethod
    def _expand_music_dir(cls, value: Optional[str | Path]) -> Optional[Path]:
        if value is None or value == "":
            return None
        return Path(value).expanduser()

    @field_validator("output", mode="before")
    @classmethod
    def _expand_output(cls, value: Optional[str | Path]) -> Path:
        if value is None or value == "":
            return Path(".")
        return Path(value).expanduser()

    @field_validator("include_extensions", mode="after")
    @classmethod
    def _normalize_extensions(cls, values: List[str]) -> List[str]:
        normalized = sorted(normalize_extensions(values))
        if not normalized:
            raise ValueError("at least one audio extension is required")
        return normalized


class Settings(BaseModel):
    scan: ScanSettings = ScanSettings()

    @classmethod
    def load(cls, path: Path) -> "Settings":
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Could not read config {path}: {exc}") from exc
        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Settings":
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    def with_overrides(self, **overrides: Any) -> "Settings":
        values = self.scan.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        return Settings.from_mapping({"scan": values})


def find_config(explicit_path: Optional[Path]) -> Optional[Path]:
    if explicit_path:
        if not explicit_path.exists():
            raise ConfigurationError(f"Config file not found: {explicit_path}")
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "music2json.yaml", cwd / "music2json.yml"):
        if candidate.exists():
            return candidate
    return None


def load_settings(
    config_path: Optional[Path] = None,
    *,
    music_dir: Optional[Path] = None,
    output: Optional[Path] = None,
    limit: Optional[int] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Layer defaults, config file, environment and CLI values, in that order."""
    if environ is None:
        load_dotenv(override=False)
        environ = os.environ
    path = find_config(config_path)
    settings = Settings.load(path) if path else Settings()
    settings = settings.with_overrides(
        music_dir=environ.get(ENV_MUSIC_PATH) or None,
        output=environ.get(ENV_OUTPUT_PATH) or None,
    )
    return settings.with_overrides(music_dir=music_dir, output=output, limit=limit)
