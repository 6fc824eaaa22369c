"""
Configuration management for multiscale-features.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError
import yaml


# -----------------------
# Typed config structures
# -----------------------


class FeaturesConfig(BaseModel):
    num_scales: int = Field(default=10, ge=1, description="Number of feature levels above the base level")
    start_resolution: float = Field(default=0.005, gt=0, description="Voxel edge length of the finest level")
    radius: float = Field(default=0.75, gt=0, description="Colour averaging radius used by level 1")
    k_neighbors: int = Field(
        default=10,
        ge=2,
        description="Neighbours per shape descriptor (at least 2, covariance divides by k - 1)",
    )


class ParallelConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable CPU parallelization of the descriptor passes")
    n_workers: Optional[int] = Field(default=None, description="Number of worker processes (None = auto-detect: cpu_count - 1)")
    chunk_points: int = Field(default=250_000, gt=0, description="Query points handed to a worker at a time")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


def default_config_path() -> Path:
    """
    Location of the packaged default configuration.

    File is at: multiscale_features/utils/config.py
    parents sequence:
      0 -> multiscale_features/utils
      1 -> multiscale_features (holds default.yaml as package data)
    """
    return Path(__file__).resolve().parents[1] / "default.yaml"


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load configuration from YAML into a typed AppConfig.

    Search order when path is None:
    1) multiscale_features/default.yaml (installed with the package)
    2) if missing and allow_missing=True: return default AppConfig()

    Args:
        path: Explicit YAML file path.
        allow_missing: If True, returns defaults when file missing; otherwise raises.

    Returns:
        AppConfig instance
    """
    cfg_path: Path
    if path is None:
        cfg_path = default_config_path()
    else:
        cfg_path = Path(path)

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        # Re-raise with context to help users fix the YAML
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}")
