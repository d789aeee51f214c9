"""
Logging configuration for cleaner output.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys


def setup(level=logging.INFO):
    """
    Configure logging for cleaner, more readable output.

    - Suppresses per-request logs from uvicorn, aiohttp and web3
    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    - Routes engine loggers through the single root handler
    """

    # Root logger - minimal format
    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers
    root.handlers.clear()

    # Create console handler with clean format
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    # Minimal format: time + level + message
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)  # Hide HTTP requests
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)  # Keep errors
    logging.getLogger("fastapi").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    # Application loggers log through root only
    for name in ("__main__", "amm_arbitrage", "dex", "web_server"):
        app_logger = logging.getLogger(name)
        app_logger.handlers.clear()
        app_logger.setLevel(level)

    # Module loggers created before setup may carry their own handler and level
    for name, app_logger in list(logging.Logger.manager.loggerDict.items()):
        if isinstance(app_logger, logging.Logger) and name.startswith(("amm_arbitrage.", "dex.")):
            app_logger.handlers.clear()
            app_logger.setLevel(logging.NOTSET)


def setup_debug():
    """
    Verbose logging for debugging.
    Shows everything including HTTP requests.
    """
    setup(level=logging.DEBUG)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)  # Show HTTP in debug mode
