# polyshop/server.py
"""Process entry point: serve one service under uvicorn with graceful shutdown."""

from __future__ import annotations

import uvicorn

from polyshop.core.config import Settings, settings
from polyshop.core.logging import get_logger, setup_logging

SERVICES = ("cart", "catalog")

# Exit status when the store never became reachable during startup.
STARTUP_FAILURE = 1


def run(service: str, *, cfg: Settings = settings) -> int:
    setup_logging()
    logger = get_logger("polyshop.server")

    from polyshop.main import create_cart_app, create_catalog_app

    if service == "cart":
        app = create_cart_app(cfg=cfg)
    elif service == "catalog":
        app = create_catalog_app(cfg=cfg)
    else:
        raise ValueError(f"Unknown service {service!r}; expected one of {SERVICES}")

    logger.info(
        "Starting HTTP server",
        extra={"service": service, "port": cfg.PORT, "environment": cfg.ENVIRONMENT},
    )
    config = uvicorn.Config(
        app,
        host=cfg.HOST,
        port=cfg.PORT,
        lifespan="on",
        log_config=None,
        # SIGTERM: stop accepting, let in-flight requests finish, then the
        # lifespan closes the store
        timeout_graceful_shutdown=cfg.SHUTDOWN_GRACE_SECONDS,
    )
    server = uvicorn.Server(config)
    server.run()

    if not server.started:
        logger.critical("Service failed to start", extra={"service": service})
        return STARTUP_FAILURE
    logger.info("Server exited cleanly", extra={"service": service})
    return 0
