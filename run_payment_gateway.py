#!/usr/bin/env python3
# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Standalone runner for the Cronos Payment Gateway.

Env:
  - GATEWAY_PORT (default: 8000)
  - GATEWAY_HOST (default: 0.0.0.0)
  - CRONOS_FACILITATOR_URL (default: https://facilitator.cronoslabs.org)
  - CRONOS_FACILITATOR_TIMEOUT_S (default: 30)
  - CRONOS_DEFAULT_NETWORK (default: cronos-testnet)
  - CRONOS_MIN_CONFIRMATIONS (default: 2)
  - CRONOS_MAINNET_RPC_URL / CRONOS_TESTNET_RPC_URL
  - OTEL_EXPORTER_OTLP_ENDPOINT (enables tracing export when set)
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# Add repo root to Python path
repo_root = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, repo_root)
sys.path.insert(0, os.path.join(repo_root, 'gateway', 'src'))
sys.path.insert(0, os.path.join(repo_root, 'packages', 'cronos-x402', 'src'))

# Load .env before importing the gateway so env defaults are visible
from dotenv import load_dotenv  # type: ignore
load_dotenv()

from fastapi import Depends, FastAPI

from cronos_payment_gateway import GatewayRuntimeConfig, build_payment_service, get_gateway_cfg, router
from cronos_x402 import setup_otel_from_env


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("payment_gateway")


def build_app() -> FastAPI:
    if os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        setup_otel_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.payment_service = build_payment_service(get_gateway_cfg())
        try:
            yield
        finally:
            await app.state.payment_service.settlement.aclose()

    app = FastAPI(
        title="Cronos Payment Gateway",
        description="USDC.e (x402 facilitator) and native CRO payment endpoints",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health(cfg: GatewayRuntimeConfig = Depends(get_gateway_cfg)) -> dict:
        return {
            "status": "ok",
            "time": datetime.now(timezone.utc).isoformat(),
            "facilitator": cfg.facilitator_url,
            "default_network": cfg.default_network,
        }

    # Mount payment router (/api/payment/*)
    app.include_router(router)

    logger.info("Payment Gateway app initialized")
    return app


app = build_app()


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("GATEWAY_HOST", "0.0.0.0")
    port = int(os.getenv("GATEWAY_PORT", "8000"))
    uvicorn.run("run_payment_gateway:app", host=host, port=port, reload=True, log_level="info")
