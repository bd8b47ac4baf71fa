"""
CLI entry point for DynDNS Relay.

This module provides the command-line interface for starting the server.
"""

from __future__ import annotations

import sys

import uvicorn

from dyndns_relay.config import ConfigValidationError, load_config, parse_args
from dyndns_relay.logging_config import build_uvicorn_log_config, setup_logging
from dyndns_relay.server import create_app


def main() -> None:
    """
    Start the DynDNS Relay server.

    Parse command-line arguments, load configuration, and run the server.
    """
    args = parse_args()
    try:
        config = load_config(args)
    except ConfigValidationError as e:
        print(e, file=sys.stderr)  # noqa: T201
        sys.exit(1)

    masked_params = [config.auth.param]
    setup_logging(config.logging, masked_params)

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
        access_log=True,
        log_config=build_uvicorn_log_config(config.logging, masked_params),
    )


if __name__ == "__main__":
    main()
