"""Options loading with precedence: explicit > config file > env > hardcoded"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from errors import ConfigurationError
from models.options import ReplicateOptions, normalize_option_keys

logger = logging.getLogger("ssam-replicate")

CONFIG_FILE = Path("ssam.config.json")
TRUTHY = {"1", "true", "yes", "y"}


def _env_bool(value: str) -> bool:
    return value.strip().lower() in TRUTHY


def get_env_options() -> Dict[str, Any]:
    """Read options from environment variables"""
    options: Dict[str, Any] = {}
    api_key = os.getenv("REPLICATE_API_TOKEN")
    out_dir = os.getenv("SSAM_REPLICATE_OUT_DIR")
    save_output = os.getenv("SSAM_REPLICATE_SAVE_OUTPUT")
    client_log = os.getenv("SSAM_REPLICATE_LOG")
    test_output = os.getenv("SSAM_REPLICATE_TEST_OUTPUT")
    if api_key:
        options["api_key"] = api_key
    if out_dir:
        options["out_dir"] = out_dir
    if save_output is not None:
        options["save_output"] = _env_bool(save_output)
    if client_log is not None:
        options["log"] = _env_bool(client_log)
    if test_output is not None:
        options["test_output"] = [item.strip() for item in test_output.split(",")]
    return options


def load_config_file(config_file: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load options from a JSON config file.

    The file may hold the options at the top level or under a "replicate" key.
    A missing default config file is not an error; a missing explicit one is.
    """
    path = Path(config_file) if config_file else CONFIG_FILE
    if not path.exists():
        if config_file:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigurationError(f"Failed to load config file {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")
    if isinstance(config.get("replicate"), dict):
        config = config["replicate"]
    logger.info(f"Loaded options from {path}")
    return normalize_option_keys(config)


def load_options(
    overrides: Optional[Mapping[str, Any]] = None,
    config_file: Optional[Union[str, Path]] = None,
) -> ReplicateOptions:
    """Merge all option sources into one immutable ReplicateOptions"""
    merged: Dict[str, Any] = {}
    merged.update(get_env_options())
    merged.update(load_config_file(config_file))
    if overrides:
        merged.update(normalize_option_keys({k: v for k, v in overrides.items() if v is not None}))

    options = ReplicateOptions(**merged)
    if not options.api_key:
        logger.warning("No Replicate API key configured; only dry runs will succeed")
    return options
