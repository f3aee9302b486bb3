"""Mastara API service entry point.

This module provides the application instance for ASGI servers (uvicorn)
and a run() function for direct execution.
"""

import logging

from mastara.api import create_app

logger = logging.getLogger(__name__)

# uvicorn references this as mastara.api.main:app
app = create_app()


def run() -> None:
    """Run the API server using uvicorn.

    Called by the mastara-api console script. Invalid configuration
    aborts startup.
    """
    import uvicorn

    from mastara.core.logging import configure_logging
    from mastara.core.settings import get_settings

    settings = get_settings()
    configure_logging(settings)

    logger.info("Starting Mastara API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        "mastara.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    run()
