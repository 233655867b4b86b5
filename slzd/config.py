"""Configuration: load a pipeline YAML file into PipelineParams."""

from dataclasses import fields
from pathlib import Path
from typing import Union

import yaml

from slzd.pipeline import PipelineParams, validate_params


def params_from_dict(raw: dict) -> PipelineParams:
    """Build PipelineParams from a flat mapping; unknown keys are rejected."""
    known = {f.name for f in fields(PipelineParams)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown pipeline parameters: {', '.join(unknown)}")
    params = PipelineParams(**raw)
    validate_params(params)
    return params


def load_params(path: Union[str, Path]) -> PipelineParams:
    """
    Load a pipeline YAML file. Sections ('preprocessing', 'ransac', ...)
    are optional groupings and are flattened before validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"{path.name}: top level must be a mapping")

    flat = {}
    for key, value in raw.items():
        # Nested sections are only a readability aid in the YAML file.
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return params_from_dict(flat)
