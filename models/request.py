"""Inbound request payloads sent by sketches"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


def _parse_common(data: Any):
    if not isinstance(data, Mapping):
        raise ValueError(f"Request payload must be an object, got {type(data).__name__}")

    raw_input = data.get("input")
    if raw_input is None:
        raw_input = {}
    if not isinstance(raw_input, Mapping):
        raise ValueError("Request 'input' must be an object")
    try:
        json.dumps(raw_input)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Request 'input' is not JSON serializable: {e}")

    # only an explicit false turns dry run off
    dry_run = data.get("dryRun", True) is not False
    return dict(raw_input), dry_run


@dataclass(frozen=True)
class PredictRequest:
    """Payload of a predict request: a specific model version"""
    version: str
    input: Dict[str, Any] = field(default_factory=dict)
    dry_run: bool = True

    @classmethod
    def from_payload(cls, data: Any) -> "PredictRequest":
        model_input, dry_run = _parse_common(data)
        return cls(version=str(data.get("version") or ""), input=model_input, dry_run=dry_run)


@dataclass(frozen=True)
class RunRequest:
    """Payload of a run request: a model reference, optionally pinned to a version"""
    model: str
    input: Dict[str, Any] = field(default_factory=dict)
    dry_run: bool = True

    @classmethod
    def from_payload(cls, data: Any) -> "RunRequest":
        model_input, dry_run = _parse_common(data)
        return cls(model=str(data.get("model") or ""), input=model_input, dry_run=dry_run)
