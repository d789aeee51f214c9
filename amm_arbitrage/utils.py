"""
Common helpers for the arbitrage engine.

Wei formatting, loose integer parsing for amounts arriving over the wire,
address normalisation and structured loggers.
"""

import logging
from decimal import Decimal
from typing import Any, Optional, Union


# Amount utilities
def big_number_to_decimal(value: int, base: int = 18) -> Decimal:
    """
    Convert an integer amount in the smallest unit to a Decimal.

    Args:
        value: Amount in the smallest unit (e.g. wei)
        base: Number of decimals of the unit (18 for ether, 9 for gwei)

    Returns:
        Decimal amount in whole units
    """
    return Decimal(value) / (Decimal(10) ** base)


def format_ether(value: int, places: int = 6) -> str:
    """Format a wei amount as an ether string with fixed decimals."""
    return f"{big_number_to_decimal(value):.{places}f}"


def parse_int_amount(value: Any) -> int:
    """
    Parse an integer amount from the shapes JSON senders produce.

    Accepts ints, decimal strings, ``0x`` hex strings and ethers-style
    ``{"type": "BigNumber", "hex": "0x.."}`` objects.

    Raises:
        ValueError: If the value cannot be read as a non-negative integer
    """
    if isinstance(value, bool):
        raise ValueError(f"Not an integer amount: {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            amount = int(text, 16)
        else:
            amount = int(text)
    elif isinstance(value, dict) and "hex" in value:
        amount = int(value["hex"], 16)
    else:
        raise ValueError(f"Not an integer amount: {value!r}")

    if amount < 0:
        raise ValueError(f"Amount must not be negative: {amount}")
    return amount


# Address utilities
def normalize_address(address: str) -> str:
    """Lower-case an address for use as a dictionary key."""
    return address.lower()


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two addresses ignoring checksum casing."""
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


# Logging utilities
def get_logger(name: str, level: Union[str, int] = logging.INFO) -> logging.Logger:
    """
    Get a logger with consistent formatting.

    Handlers are only attached when the logger has none and the root logger
    has not been configured by ``logging_config.setup``.

    Args:
        name: Logger name (typically __name__)
        level: Logging level

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        format_str = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
        handler.setFormatter(logging.Formatter(format_str, datefmt="%H:%M:%S"))
        logger.addHandler(handler)

    return logger
