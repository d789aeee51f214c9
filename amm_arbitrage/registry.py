"""
Lookup of the executor contract that trades each input token.
"""

from typing import Dict, Optional

from .exceptions import ExecutorNotConfiguredError
from .interfaces import ExecutorHandle
from .utils import normalize_address


class ExecutorRegistry:
    """Maps token addresses to executor handles, ignoring address casing."""

    def __init__(self, executors: Optional[Dict[str, ExecutorHandle]] = None):
        self._executors: Dict[str, ExecutorHandle] = {}
        for token_address, executor in (executors or {}).items():
            self.register(token_address, executor)

    def register(self, token_address: str, executor: ExecutorHandle) -> None:
        self._executors[normalize_address(token_address)] = executor

    def executor_for(self, token_address: str) -> ExecutorHandle:
        """
        Get the executor for a token.

        Raises:
            ExecutorNotConfiguredError: If the token has no executor
        """
        executor = self._executors.get(normalize_address(token_address))
        if executor is None:
            raise ExecutorNotConfiguredError(
                f"No bundle executor configured for token {token_address}",
                token_address=token_address,
            )
        return executor

    def __contains__(self, token_address: str) -> bool:
        return normalize_address(token_address) in self._executors

    def __len__(self) -> int:
        return len(self._executors)
