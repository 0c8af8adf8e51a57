# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""Cronos Payment Gateway

Provides a FastAPI router exposing USDC.e (facilitator) and native CRO payment endpoints.

Usage:
    from cronos_payment_gateway import router, build_payment_service, get_gateway_cfg

    app = FastAPI()
    app.state.payment_service = build_payment_service(get_gateway_cfg())
    app.include_router(router)
"""

from .routes import (
    DelegatedSubmitRequest,
    DirectVerifyRequest,
    GatewayRuntimeConfig,
    build_payment_service,
    get_gateway_cfg,
    get_payment_service,
    router,
)

__version__ = "0.1.0"

__all__ = [
    "router",
    "GatewayRuntimeConfig",
    "get_gateway_cfg",
    "get_payment_service",
    "build_payment_service",
    "DelegatedSubmitRequest",
    "DirectVerifyRequest",
]
