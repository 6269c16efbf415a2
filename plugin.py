"""The ssam-replicate dev server plugin"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from handlers.replicate import register_replicate_handlers
from models.options import ReplicateOptions
from replicate_client import ReplicateClient

logger = logging.getLogger("ssam-replicate")

PLUGIN_NAME = "ssam-replicate"


@dataclass
class Plugin:
    """A dev server plugin: configure_server is called once with the server"""
    name: str
    configure_server: Callable[[Any], None]
    apply: Optional[str] = "serve"


def ssam_replicate(
    options: Union[ReplicateOptions, Mapping[str, Any]],
    client_factory: Callable[[str], Any] = ReplicateClient,
) -> Plugin:
    """Create the plugin relaying sketch requests to Replicate.

    options may be a ReplicateOptions or a mapping with the camelCase keys
    (apiKey, testOutput, saveOutput, log, outDir).
    """
    if not isinstance(options, ReplicateOptions):
        options = ReplicateOptions.from_mapping(options)

    def configure_server(server):
        replicate_client = client_factory(options.api_key)
        register_replicate_handlers(server.ws, replicate_client, options)
        logger.info(f"{PLUGIN_NAME} ready (outDir={options.out_dir}, saveOutput={options.save_output})")

    return Plugin(name=PLUGIN_NAME, configure_server=configure_server)
