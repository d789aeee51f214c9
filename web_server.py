#!/usr/bin/env python3
"""
FastAPI ingestion server for swap intents.

Clients push swap intents over the WebSocket at ``/``; each one is answered
with the signed back-run transaction, or with the reason none was produced.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from amm_arbitrage.exceptions import ArbitrageError
from amm_arbitrage.types import SwapToken
from amm_arbitrage.utils import get_logger, parse_int_amount
from dex.runner import ArbitrageRunner

logger = get_logger(__name__)


# Pydantic models for the wire format
class SwapTokenMessage(BaseModel):
    """Swap intent as sent by clients (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    token_in: str = Field(alias="tokenIn")
    amount_in: int = Field(alias="amountIn")
    token_out: str = Field(alias="tokenOut")
    amount_out: int = Field(alias="amountOut")
    market: str
    slippage: int = 0

    @field_validator("amount_in", "amount_out", "slippage", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> int:
        return parse_int_amount(value)

    def to_swap_token(self) -> SwapToken:
        return SwapToken(
            id=self.id,
            token_in=self.token_in,
            amount_in=self.amount_in,
            token_out=self.token_out,
            amount_out=self.amount_out,
            market=self.market,
            slippage=self.slippage,
        )


class HealthResponse(BaseModel):
    status: str
    latest_block: Optional[int]
    reserves_block: Optional[int]


def create_app(runner: ArbitrageRunner) -> FastAPI:
    """Build the ingestion app around a runner."""
    app = FastAPI(title="AMM Arbitrage Ingestion")

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="ok",
            latest_block=runner.tracker.latest_block,
            reserves_block=runner.tracker.last_refreshed_block,
        )

    @app.websocket("/")
    async def swap_websocket(websocket: WebSocket):
        """Answer every swap intent frame with a transaction or an error."""
        await websocket.accept()
        logger.info("Swap intent client connected")

        try:
            while True:
                data = await websocket.receive_text()
                reply = await handle_swap_message(runner, data)
                await websocket.send_json(reply)
        except WebSocketDisconnect:
            logger.info("Swap intent client disconnected")

    return app


async def handle_swap_message(runner: ArbitrageRunner, data: str) -> Dict[str, Any]:
    """Reply payload for one WebSocket frame."""
    try:
        message = SwapTokenMessage.model_validate_json(data)
    except ValidationError as e:
        logger.info(f"Rejected malformed swap intent: {data}")
        return {"error": f"Invalid swap intent: {e.errors()[0]['msg']}"}

    try:
        signed_transaction = await runner.check_arbitrage(message.to_swap_token())
    except ArbitrageError as e:
        logger.info(f"Swap {message.id}: {e}")
        return {"id": message.id, "error": str(e)}
    except Exception as e:
        logger.error(f"Swap {message.id} failed: {e}", exc_info=True)
        return {"id": message.id, "error": "internal error"}

    logger.info(f"Swap {message.id}: {signed_transaction}")
    return {"id": message.id, "signedTransaction": signed_transaction}
