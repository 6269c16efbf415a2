"""Plugin options"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping, Tuple

from errors import ConfigurationError

logger = logging.getLogger("ssam-replicate")

# camelCase keys used by sketches and config files
OPTION_ALIASES = {
    "apiKey": "api_key",
    "testOutput": "test_output",
    "saveOutput": "save_output",
    "outDir": "out_dir",
}


@dataclass(frozen=True)
class ReplicateOptions:
    """Options for the ssam-replicate plugin, fixed for the lifetime of the server"""
    api_key: str = ""
    test_output: Tuple[str, ...] = ("",)
    save_output: bool = True
    log: bool = True
    out_dir: str = "./output"

    def __post_init__(self):
        if not isinstance(self.api_key, str):
            raise ConfigurationError("apiKey must be a string")
        if not isinstance(self.test_output, (list, tuple)) or not all(isinstance(item, str) for item in self.test_output):
            raise ConfigurationError("testOutput must be a list of strings")
        # lists from JSON are frozen into tuples
        object.__setattr__(self, "test_output", tuple(self.test_output))
        for name in ("save_output", "log"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"{name} must be a boolean")
        if not isinstance(self.out_dir, str) or not self.out_dir:
            raise ConfigurationError("outDir must be a non-empty string")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ReplicateOptions":
        return cls(**normalize_option_keys(mapping))


def normalize_option_keys(mapping: Mapping[str, Any]) -> dict:
    """Translate camelCase option keys and drop the ones we do not know"""
    known = {f.name for f in fields(ReplicateOptions)}
    normalized = {}
    for key, value in mapping.items():
        name = OPTION_ALIASES.get(key, key)
        if name not in known:
            logger.warning(f"Ignoring unknown option '{key}'")
            continue
        normalized[name] = value
    return normalized
