"""
Tests for dex/runner.py

Block tracking, once-per-block reserve refresh, swap-intent handling and the
batch path driven by new blocks.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account

from amm_arbitrage.arbitrage import Arbitrage
from amm_arbitrage.constants import ETHER, WETH_ADDRESS
from amm_arbitrage.exceptions import NoArbitrageError, RelayError, StaleReservesError
from amm_arbitrage.types import SimulationResult, SwapToken
from dex.runner import MAX_REFRESH_ATTEMPTS, ArbitrageRunner, BlockTracker

from conftest import TOKEN_A, TOKEN_B, ScriptedRelay


class RefreshCounter:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


@pytest.fixture
def relay():
    return ScriptedRelay()


@pytest.fixture
def refresh():
    return RefreshCounter()


@pytest.fixture
def runner(searcher_wallet, relay, registry, markets_by_token, crossed_pairs, refresh):
    arbitrage = Arbitrage(searcher_wallet, relay, registry)
    return ArbitrageRunner(
        arbitrage,
        markets_by_token,
        list(crossed_pairs),
        refresh,
        miner_reward_percentage=50,
    )


def _swap_into_cheap_pool(crossed_pairs, **overrides):
    """WETH -> TOKEN_A intent through the cheap pool, at its quoted price."""
    _, cheap = crossed_pairs
    fields = {
        "id": 7,
        "token_in": WETH_ADDRESS,
        "amount_in": ETHER,
        "token_out": TOKEN_A,
        "amount_out": cheap.get_tokens_out(WETH_ADDRESS, TOKEN_A, ETHER),
        "market": cheap.market_address,
        "slippage": 50,
    }
    fields.update(overrides)
    return SwapToken(**fields)


class TestBlockTracker:
    def test_monotonic(self):
        tracker = BlockTracker()
        assert tracker.observe_block(10)
        assert not tracker.observe_block(10)
        assert not tracker.observe_block(9)
        assert tracker.observe_block(12)
        assert tracker.latest_block == 12

    def test_refresh_state(self):
        tracker = BlockTracker()
        assert tracker.needs_refresh

        tracker.mark_refreshed(None)
        assert not tracker.needs_refresh

        tracker.observe_block(5)
        assert tracker.needs_refresh
        assert tracker.context().is_stale

        tracker.mark_refreshed(5)
        assert not tracker.needs_refresh
        assert not tracker.context().is_stale
        assert tracker.context().reserves_block == 5


class TestEnsureFreshReserves:
    @pytest.mark.asyncio
    async def test_refreshes_once_per_block(self, runner, refresh):
        await runner.on_block(100)
        await runner.ensure_fresh_reserves()
        await runner.ensure_fresh_reserves()
        assert refresh.calls == 1

        await runner.on_block(101)
        context = await runner.ensure_fresh_reserves()
        assert refresh.calls == 2
        assert context.block_number == 101
        assert context.reserves_block == 101

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, runner, refresh):
        await runner.on_block(100)
        await asyncio.gather(*[runner.ensure_fresh_reserves() for _ in range(5)])
        assert refresh.calls == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_is_retried(self, runner):
        runner.refresh_reserves = AsyncMock(side_effect=[ConnectionError("rpc down"), None])
        await runner.on_block(100)

        with pytest.raises(ConnectionError):
            await runner.ensure_fresh_reserves()
        assert runner.tracker.needs_refresh

        await runner.ensure_fresh_reserves()
        assert not runner.tracker.needs_refresh


class TestSimulateMarketSwap:
    def test_known_market(self, runner, crossed_pairs):
        assert runner.simulate_market_swap(TOKEN_A, _swap_into_cheap_pool(crossed_pairs))

    def test_unknown_market(self, runner, crossed_pairs):
        swap = _swap_into_cheap_pool(
            crossed_pairs, market="0x9999999999999999999999999999999999999999"
        )
        assert not runner.simulate_market_swap(TOKEN_A, swap)

    def test_unknown_token(self, runner, crossed_pairs):
        assert not runner.simulate_market_swap(TOKEN_B, _swap_into_cheap_pool(crossed_pairs))

    def test_intent_that_would_not_fill(self, runner, crossed_pairs):
        swap = _swap_into_cheap_pool(crossed_pairs, amount_in=ETHER // 2, slippage=0)
        assert not runner.simulate_market_swap(TOKEN_A, swap)


class TestCheckArbitrage:
    @pytest.mark.asyncio
    async def test_returns_signed_transaction(
        self, runner, crossed_pairs, executor, searcher_wallet, refresh
    ):
        await runner.on_block(100)

        raw = await runner.check_arbitrage(_swap_into_cheap_pool(crossed_pairs))

        assert Account.recover_transaction(raw) == searcher_wallet.address
        assert refresh.calls == 1
        assert len(executor.populate_calls) == 1

    @pytest.mark.asyncio
    async def test_token_sold_for_reference_asset(self, runner, crossed_pairs):
        expensive, _ = crossed_pairs
        tokens = 1_000 * ETHER
        swap = SwapToken(
            id=8,
            token_in=TOKEN_A,
            amount_in=tokens,
            token_out=WETH_ADDRESS,
            amount_out=expensive.get_tokens_out(TOKEN_A, WETH_ADDRESS, tokens),
            market=expensive.market_address,
            slippage=0,
        )

        raw = await runner.check_arbitrage(swap)

        assert raw.startswith("0x")

    @pytest.mark.asyncio
    async def test_intent_without_reference_token(self, runner, crossed_pairs):
        swap = _swap_into_cheap_pool(crossed_pairs, token_in=TOKEN_B)
        with pytest.raises(NoArbitrageError, match="no arbitrage"):
            await runner.check_arbitrage(swap)

    @pytest.mark.asyncio
    async def test_intent_failing_simulation(self, runner, crossed_pairs, executor):
        swap = _swap_into_cheap_pool(crossed_pairs, amount_out=10**30)
        with pytest.raises(NoArbitrageError):
            await runner.check_arbitrage(swap)
        assert executor.populate_calls == []

    @pytest.mark.asyncio
    async def test_no_profitable_cross(
        self, searcher_wallet, relay, registry, shallow_crossed_pairs, refresh
    ):
        expensive, cheap = shallow_crossed_pairs
        runner = ArbitrageRunner(
            Arbitrage(searcher_wallet, relay, registry),
            {TOKEN_A.lower(): [expensive, cheap]},
            [expensive, cheap],
            refresh,
            miner_reward_percentage=0,
        )
        swap = SwapToken(
            id=1,
            token_in=WETH_ADDRESS,
            amount_in=ETHER,
            token_out=TOKEN_A,
            amount_out=cheap.get_tokens_out(WETH_ADDRESS, TOKEN_A, ETHER),
            market=cheap.market_address,
            slippage=0,
        )

        with pytest.raises(NoArbitrageError):
            await runner.check_arbitrage(swap)

    @pytest.mark.asyncio
    async def test_block_arriving_during_refresh(self, runner, crossed_pairs, searcher_wallet):
        refreshed_at = []

        async def refresh_while_block_arrives():
            refreshed_at.append(runner.tracker.latest_block)
            if len(refreshed_at) == 1:
                await runner.on_block(101)

        runner.refresh_reserves = refresh_while_block_arrives
        await runner.on_block(100)

        raw = await runner.check_arbitrage(_swap_into_cheap_pool(crossed_pairs))

        assert Account.recover_transaction(raw) == searcher_wallet.address
        assert refreshed_at == [100, 101]
        assert runner.tracker.last_refreshed_block == 101

    @pytest.mark.asyncio
    async def test_heads_outrunning_every_refresh(self, runner, crossed_pairs):
        async def refresh_while_block_arrives():
            await runner.on_block(runner.tracker.latest_block + 1)

        runner.refresh_reserves = refresh_while_block_arrives
        await runner.on_block(100)

        with pytest.raises(StaleReservesError):
            await runner.check_arbitrage(_swap_into_cheap_pool(crossed_pairs))
        assert runner.tracker.latest_block == 100 + MAX_REFRESH_ATTEMPTS


class TestOnBlock:
    @pytest.mark.asyncio
    async def test_watch_only_mode(self, runner, refresh, relay):
        assert await runner.on_block(100) is None
        assert refresh.calls == 0
        assert relay.simulated == []

    @pytest.mark.asyncio
    async def test_batch_mode_submits(self, runner, refresh, relay):
        runner.batch_on_block = True

        submission = await runner.on_block(100)

        assert refresh.calls == 1
        assert submission is not None
        assert relay.simulated == [101]
        assert sorted(relay.sent) == [101, 102]

    @pytest.mark.asyncio
    async def test_repeated_block_ignored(self, runner, relay):
        runner.batch_on_block = True
        await runner.on_block(100)
        assert await runner.on_block(100) is None
        assert relay.simulated == [101]

    @pytest.mark.asyncio
    async def test_nothing_submitted_is_not_an_error(self, runner, relay):
        runner.batch_on_block = True
        relay.simulations = [SimulationResult(error="reverted")]

        assert await runner.on_block(100) is None
        assert relay.sent == []

    @pytest.mark.asyncio
    async def test_relay_failure_propagates(self, runner, relay):
        runner.batch_on_block = True
        relay.send_errors = {101: RelayError("down"), 102: RelayError("down")}

        with pytest.raises(RelayError):
            await runner.on_block(100)


class TestWatchBlocks:
    @pytest.mark.asyncio
    async def test_polls_until_stopped(self, runner):
        stop_event = asyncio.Event()
        web3 = MagicMock()
        blocks = iter([100, 100, 101])
        seen = []

        async def on_block(block_number):
            seen.append(block_number)
            if len(seen) == 3:
                stop_event.set()

        type(web3.eth).block_number = property(lambda self: next(blocks))
        runner.on_block = on_block

        await asyncio.wait_for(runner.watch_blocks(web3, 0.01, stop_event), timeout=5)

        assert seen == [100, 100, 101]

    @pytest.mark.asyncio
    async def test_keeps_polling_after_errors(self, runner):
        stop_event = asyncio.Event()
        web3 = MagicMock()
        calls = []

        def block_number(self):
            calls.append(1)
            if len(calls) == 1:
                raise ConnectionError("rpc down")
            return 100 + len(calls)

        async def on_block(block_number):
            if block_number == 102:
                raise RelayError("relay down")
            stop_event.set()

        type(web3.eth).block_number = property(block_number)
        runner.on_block = on_block

        await asyncio.wait_for(runner.watch_blocks(web3, 0.01, stop_event), timeout=5)

        assert len(calls) == 3
