import argparse
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Iterable, Optional, Sequence

import uvicorn
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.routing import Mount, WebSocketRoute
from starlette.staticfiles import StaticFiles

from errors import ConfigurationError
from hmr_channel import MessageChannel
from managers.options_manager import load_options
from plugin import Plugin, ssam_replicate

logger = logging.getLogger("ssam-replicate")

DEFAULT_HMR_PATH = "/__hmr"


class DevServer:
    """Serves a sketch directory and the websocket channel plugins talk over"""

    def __init__(
        self,
        root: str = ".",
        plugins: Iterable[Plugin] = (),
        hmr_path: str = DEFAULT_HMR_PATH,
    ):
        self.root = Path(root).resolve()
        self.hmr_path = hmr_path
        self.ws = MessageChannel()
        self.plugins = list(plugins)
        for plugin in self.plugins:
            if plugin.apply not in (None, "serve"):
                logger.debug("Skipping plugin '%s' (apply=%s)", plugin.name, plugin.apply)
                continue
            plugin.configure_server(self)
            logger.info("Configured plugin '%s'", plugin.name)
        self.app = self._build_app()

    def _build_app(self) -> Starlette:
        @asynccontextmanager
        async def lifespan(app):
            logger.info("Serving %s (websocket at %s)", self.root, self.hmr_path)
            try:
                yield
            finally:
                if self.ws.pending:
                    logger.info("Shutting down with %s request(s) still in flight", self.ws.pending)
                logger.info("Shutting down dev server")

        routes = [
            WebSocketRoute(self.hmr_path, self.ws.endpoint),
            Mount("/", app=StaticFiles(directory=str(self.root), html=True), name="sketch"),
        ]
        return Starlette(routes=routes, lifespan=lifespan)


def parse_args(argv: Optional[Sequence[str]] = None):
    p = argparse.ArgumentParser(description="Dev server relaying sketch requests to Replicate")
    p.add_argument("--root", default=".", help="Sketch directory to serve (default: .)")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=5173)
    p.add_argument("--config", help="JSON config file (default: ./ssam.config.json if present)")
    p.add_argument("--out-dir", help="Directory for exported output files")
    p.add_argument(
        "--dry-run-output",
        nargs="+",
        metavar="FILE",
        help="Output returned for dry runs",
    )
    p.add_argument("--no-save", action="store_true", help="Do not save generated files")
    p.add_argument("--no-log", action="store_true", help="Do not mirror log messages to the browser")
    p.add_argument("--log-level", default="INFO")
    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None):
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())

    overrides = {
        "out_dir": args.out_dir,
        "test_output": args.dry_run_output,
        "save_output": False if args.no_save else None,
        "log": False if args.no_log else None,
    }
    try:
        options = load_options(overrides, config_file=args.config)
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        raise SystemExit(2)

    server = DevServer(root=args.root, plugins=[ssam_replicate(options)])
    uvicorn.run(server.app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
