"""
Exception hierarchy for the AMM arbitrage engine.

Each failure mode of the detect -> build -> estimate -> simulate -> submit
pipeline has its own type so callers can tell "skip this candidate" apart
from "abort the cycle".
"""

from typing import Any, Dict, Optional


class ArbitrageError(Exception):
    """Base exception for all arbitrage engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class NoArbitrageError(ArbitrageError):
    """Raised when nothing profitable was found for a request."""

    pass


class StaleReservesError(ArbitrageError):
    """Raised when detection is asked to run on reserves from an older block."""

    def __init__(
        self,
        message: str,
        block_number: Optional[int] = None,
        reserves_block: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.block_number = block_number
        self.reserves_block = reserves_block


class ExecutorNotConfiguredError(ArbitrageError):
    """Raised when no executor contract is configured for a token."""

    def __init__(
        self,
        message: str,
        token_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.token_address = token_address


class ExecutionError(ArbitrageError):
    """Raised when turning an opportunity into a transaction fails."""

    def __init__(
        self,
        message: str,
        token_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.token_address = token_address


class TransactionBuildError(ExecutionError):
    """Raised when a market cannot encode its leg of the trade."""

    pass


class GasEstimateRejectedError(ExecutionError):
    """Raised when the node's gas estimate is above the allowed ceiling."""

    def __init__(
        self,
        message: str,
        gas_estimate: Optional[int] = None,
        limit: Optional[int] = None,
        token_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, token_address, details)
        self.gas_estimate = gas_estimate
        self.limit = limit


class GasEstimateFailedError(ExecutionError):
    """Raised when the gas estimation call itself fails."""

    pass


class SimulationRejectedError(ExecutionError):
    """Raised when relay simulation reports an error or a reverted call."""

    def __init__(
        self,
        message: str,
        simulation: Optional[Any] = None,
        token_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, token_address, details)
        self.simulation = simulation


class NoArbitrageSubmittedError(ExecutionError):
    """Raised when every ranked opportunity was abandoned."""

    pass


class NetworkError(ArbitrageError):
    """Raised when network or connectivity issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class RelayError(NetworkError):
    """Raised when the bundle relay rejects or fails a request."""

    pass
