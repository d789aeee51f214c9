"""
Prometheus metrics for the arbitrage engine.

Counts how far each opportunity gets through the detect -> estimate ->
simulate -> submit pipeline, and serves them over HTTP.
"""

import logging
from typing import Optional

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

logger = logging.getLogger(__name__)


class ArbitrageMetrics:
    """Pipeline counters with an optional aiohttp exporter."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()

        self._app = None
        self._runner = None
        self._site = None

    def _initialize_metrics(self):
        self.opportunities_found_total = Counter(
            "amm_arbitrage_opportunities_found_total",
            "Crossed markets above the profit threshold",
            registry=self.registry,
        )
        self.gas_estimate_rejected_total = Counter(
            "amm_arbitrage_gas_estimate_rejected_total",
            "Candidates dropped because the gas estimate was too large",
            registry=self.registry,
        )
        self.gas_estimate_failed_total = Counter(
            "amm_arbitrage_gas_estimate_failed_total",
            "Candidates dropped because gas estimation errored",
            registry=self.registry,
        )
        self.simulation_failed_total = Counter(
            "amm_arbitrage_simulation_failed_total",
            "Bundles dropped after a failed relay simulation",
            registry=self.registry,
        )
        self.bundles_submitted_total = Counter(
            "amm_arbitrage_bundles_submitted_total",
            "Bundles sent to the relay",
            registry=self.registry,
        )
        self.transactions_signed_total = Counter(
            "amm_arbitrage_transactions_signed_total",
            "Signed arbitrage transactions returned to callers",
            registry=self.registry,
        )
        self.latest_block = Gauge(
            "amm_arbitrage_latest_block",
            "Latest block number seen",
            registry=self.registry,
        )

    def record_opportunities(self, count: int):
        self.opportunities_found_total.inc(count)

    def record_gas_rejected(self):
        self.gas_estimate_rejected_total.inc()

    def record_gas_failed(self):
        self.gas_estimate_failed_total.inc()

    def record_simulation_failed(self):
        self.simulation_failed_total.inc()

    def record_bundle_submitted(self):
        self.bundles_submitted_total.inc()

    def record_transaction_signed(self):
        self.transactions_signed_total.inc()

    def set_latest_block(self, block_number: int):
        self.latest_block.set(block_number)

    # === SERVER MANAGEMENT ===

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ) -> bool:
        """Start Prometheus metrics HTTP server"""
        try:
            self._app = web.Application()
            self._app.router.add_get(path, self._metrics_handler)
            self._app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(self._app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"Metrics server started on http://{host}:{port}{path}")
            return True

        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self):
        """Stop the metrics server"""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        metrics_output = generate_latest(self.registry)
        # aiohttp rejects a charset inside content_type
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(text=metrics_output.decode("utf-8"), content_type=content_type)

    async def _health_handler(self, request):
        return web.json_response({"status": "healthy", "service": "amm_arbitrage_metrics"})
