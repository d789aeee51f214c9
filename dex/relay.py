"""
Flashbots-style bundle relay client.

Speaks the relay's JSON-RPC dialect over aiohttp. Every request body is
signed by the relay identity and sent in the ``X-Flashbots-Signature``
header as ``<address>:<signature of keccak256(body)>``; the relay uses it
for reputation only, so the identity needs no funds.
"""

import asyncio
import itertools
import json
from typing import Any, Dict, List, Optional

import aiohttp
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from amm_arbitrage.constants import DEFAULT_RELAY_URL
from amm_arbitrage.exceptions import RelayError
from amm_arbitrage.types import BundleTransaction, SimulationResult
from amm_arbitrage.utils import get_logger

logger = get_logger(__name__)


class FlashbotsRelay:
    """
    Signs, simulates and submits bundles.

    Args:
        relay_signing_account: Identity used to sign relay requests
        relay_url: Relay JSON-RPC endpoint
        timeout_sec: Total timeout per request; None waits indefinitely
        session: Optional shared aiohttp session (created lazily otherwise)
    """

    def __init__(
        self,
        relay_signing_account: LocalAccount,
        relay_url: str = DEFAULT_RELAY_URL,
        timeout_sec: Optional[float] = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.relay_signing_account = relay_signing_account
        self.relay_url = relay_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def signature_header(self, body: str) -> str:
        """Value of the X-Flashbots-Signature header for a request body."""
        body_hash = Web3.to_hex(Web3.keccak(text=body))
        signed = self.relay_signing_account.sign_message(encode_defunct(text=body_hash))
        return f"{self.relay_signing_account.address}:{Web3.to_hex(signed.signature)}"

    async def _request(self, method: str, params: List[Any]) -> Dict[str, Any]:
        body = json.dumps(
            {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        )
        headers = {
            "Content-Type": "application/json",
            "X-Flashbots-Signature": self.signature_header(body),
        }

        session = await self._get_session()
        try:
            async with session.post(self.relay_url, data=body, headers=headers) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise RelayError(
                        f"Relay returned HTTP {resp.status} for {method}: {text}",
                        endpoint=self.relay_url,
                        status_code=resp.status,
                    )
                try:
                    payload = await resp.json(content_type=None)
                except json.JSONDecodeError as e:
                    raise RelayError(
                        f"Relay returned invalid JSON for {method}: {e}",
                        endpoint=self.relay_url,
                        status_code=resp.status,
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RelayError(
                f"Relay request {method} failed: {e}", endpoint=self.relay_url
            ) from e

        if not isinstance(payload, dict):
            raise RelayError(
                f"Relay returned a non-object response for {method}: {payload!r}",
                endpoint=self.relay_url,
            )
        return payload

    async def sign_bundle(self, bundled_transactions: List[BundleTransaction]) -> List[str]:
        """Sign each bundle transaction with its signer; returns raw 0x hex transactions."""
        signed_transactions = []
        for bundled in bundled_transactions:
            signed = bundled.signer.sign_transaction(bundled.transaction)
            signed_transactions.append(Web3.to_hex(signed.raw_transaction))
        return signed_transactions

    async def simulate(
        self,
        signed_bundle: List[str],
        block_tag: int,
        state_block_tag: str = "latest",
    ) -> SimulationResult:
        """
        Simulate a bundle as if mined in block_tag (``eth_callBundle``).

        JSON-RPC errors come back as a SimulationResult with ``error`` set;
        transport failures raise RelayError.
        """
        response = await self._request(
            "eth_callBundle",
            [
                {
                    "txs": signed_bundle,
                    "blockNumber": hex(block_tag),
                    "stateBlockNumber": state_block_tag,
                }
            ],
        )

        if "error" in response:
            error = response["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logger.debug(f"Simulation error for block {block_tag}: {message}")
            return SimulationResult(error=message)

        result = response.get("result")
        if not isinstance(result, dict):
            logger.debug(f"Empty simulation result for block {block_tag}: {result!r}")
            return SimulationResult(error="relay returned no simulation result")

        results = result.get("results") or []
        first_revert = next((r for r in results if "revert" in r or "error" in r), None)
        return SimulationResult(
            coinbase_diff=int(result.get("coinbaseDiff", 0)),
            total_gas_used=int(result.get("totalGasUsed", 0)),
            results=results,
            first_revert=first_revert,
            bundle_hash=result.get("bundleHash"),
        )

    async def send_raw_bundle(
        self, signed_bundle: List[str], target_block_number: int
    ) -> Dict[str, Any]:
        """
        Submit a signed bundle for one target block (``eth_sendBundle``).

        Raises:
            RelayError: If the relay refuses the bundle
        """
        response = await self._request(
            "eth_sendBundle",
            [{"txs": signed_bundle, "blockNumber": hex(target_block_number)}],
        )
        if "error" in response:
            raise RelayError(
                f"Relay refused bundle for block {target_block_number}: {response['error']}",
                endpoint=self.relay_url,
            )
        logger.info(f"Bundle submitted for block {target_block_number}")
        return response.get("result") or {}
