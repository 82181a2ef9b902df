from __future__ import annotations

import argparse

from mediatether.cli.context import CLIContext
from mediatether.core.errors import ConfigurationError
from mediatether.web.app import create_app


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("web", help="Serve the proxy endpoint and JSON API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8765)
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise ConfigurationError("uvicorn is required for web mode. Install project dependencies.") from exc

    ctx.engine()
    app = create_app(ctx.paths)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0
