"""Executable entry point for the gateway.

Example:
    $ python -m ingv_quake_gateway.run_server
    $ PORT=9000 REDIS_URL=redis://cache:6379/0 python -m ingv_quake_gateway.run_server

Production Recommendation:
    Prefer invoking uvicorn directly for tuned concurrency:
        uvicorn ingv_quake_gateway.app:app --host 0.0.0.0 --port 8080 --workers 4
"""

from __future__ import annotations

import logging

import uvicorn

from .config import GatewayConfig


def main() -> None:
    """Configure logging and serve the application with uvicorn."""
    config = GatewayConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    from .app import create_app

    uvicorn.run(create_app(config), host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
