# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import logging
import os
import uuid
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from cronos_x402.authorization import SignedTransferAuthorization
from cronos_x402.chain import ChainReader, Web3ChainReader
from cronos_x402.direct import DEFAULT_MIN_CONFIRMATIONS, DirectTransferVerifier
from cronos_x402.errors import (
    MalformedResponseError,
    PaymentValidationError,
    SettlementTimeoutError,
    TransportError,
    UnsupportedNetworkError,
)
from cronos_x402.networks import CRONOS_MAINNET, CRONOS_TESTNET, FACILITATOR_BASE_URL, NetworkDescriptor
from cronos_x402.service import (
    INVALID_AUTHORIZATION,
    SETTLEMENT_FAILED,
    VERIFICATION_FAILED,
    PaymentService,
)
from cronos_x402.settlement import SettlementClient, SettlementConfig

logger = logging.getLogger(__name__)


# -------------------------------
# Config
# -------------------------------


class GatewayRuntimeConfig(BaseModel):
    facilitator_url: str = Field(
        default_factory=lambda: os.getenv("CRONOS_FACILITATOR_URL", FACILITATOR_BASE_URL)
    )
    facilitator_timeout_s: float = Field(
        default_factory=lambda: float(os.getenv("CRONOS_FACILITATOR_TIMEOUT_S", "30"))
    )
    default_network: str = Field(default_factory=lambda: os.getenv("CRONOS_DEFAULT_NETWORK", "cronos-testnet"))
    min_confirmations: int = Field(
        default_factory=lambda: int(os.getenv("CRONOS_MIN_CONFIRMATIONS", str(DEFAULT_MIN_CONFIRMATIONS)))
    )
    mainnet_rpc_url: str = Field(default_factory=lambda: os.getenv("CRONOS_MAINNET_RPC_URL", CRONOS_MAINNET.rpc_url))
    testnet_rpc_url: str = Field(default_factory=lambda: os.getenv("CRONOS_TESTNET_RPC_URL", CRONOS_TESTNET.rpc_url))

    def settlement_config(self) -> SettlementConfig:
        return SettlementConfig(base_url=self.facilitator_url, timeout_s=self.facilitator_timeout_s)

    def rpc_url_for(self, network: NetworkDescriptor) -> str:
        if network.network == CRONOS_MAINNET.network:
            return self.mainnet_rpc_url
        if network.network == CRONOS_TESTNET.network:
            return self.testnet_rpc_url
        return network.rpc_url

    def reader_factory(self) -> Callable[[NetworkDescriptor], ChainReader]:
        return lambda network: Web3ChainReader(self.rpc_url_for(network))


def get_gateway_cfg() -> GatewayRuntimeConfig:
    return GatewayRuntimeConfig()


def build_payment_service(cfg: GatewayRuntimeConfig) -> PaymentService:
    return PaymentService(
        SettlementClient(cfg.settlement_config()),
        DirectTransferVerifier(reader_factory=cfg.reader_factory()),
    )


def get_payment_service(request: Request) -> PaymentService:
    svc = getattr(request.app.state, "payment_service", None)
    if svc is None:
        raise RuntimeError("payment_service not configured on app.state")
    return svc


# -------------------------------
# Models
# -------------------------------


class DelegatedSubmitRequest(BaseModel):
    network: Optional[str] = None
    authorization: SignedTransferAuthorization


class DirectVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    network: Optional[str] = None
    tx_hash: str = Field(..., alias="txHash")
    expected_recipient: str = Field(..., alias="expectedRecipient")
    expected_amount: str = Field(..., alias="expectedAmount")
    min_confirmations: Optional[int] = Field(None, alias="minConfirmations")


# -------------------------------
# Errors
# -------------------------------


router = APIRouter(prefix="/api/payment", tags=["cronos-payment"])

_DELEGATED_FAILURE_STATUS = {
    INVALID_AUTHORIZATION: 400,
    VERIFICATION_FAILED: 402,
    SETTLEMENT_FAILED: 500,
}


def _error_code_from_message(msg: str) -> str:
    m = (msg or "").lower()
    mapping = {
        "unsupported network": "NETWORK_UNSUPPORTED",
        "invalid authorization": "AUTHORIZATION_INVALID",
        "verification failed": "VERIFICATION_REJECTED",
        "payment settlement failed": "SETTLEMENT_FAILED",
        "invalid amount": "AMOUNT_INVALID",
        "transaction not found": "TX_NOT_FOUND",
        "transaction details not found": "TX_NOT_FOUND",
        "transaction failed": "TX_REVERTED",
        "invalid recipient": "TX_RECIPIENT_MISMATCH",
        "insufficient amount": "TX_AMOUNT_INSUFFICIENT",
        "insufficient confirmations": "TX_UNCONFIRMED",
        "rpc": "RPC_UNAVAILABLE",
        "timeout": "FACILITATOR_TIMEOUT",
        "facilitator": "FACILITATOR_UNAVAILABLE",
    }
    for k, v in mapping.items():
        if k in m:
            return v
    return "UNSPECIFIED"


def _error_response(e: HTTPException, req_id: str) -> JSONResponse:
    msg = e.detail if isinstance(e.detail, str) else str(e.detail)
    code = _error_code_from_message(msg)
    return JSONResponse(
        status_code=e.status_code,
        content={"error": {"code": code, "message": msg}, "request_id": req_id},
        headers={"X-Request-ID": req_id},
    )


def _transport_error_response(e: TransportError, req_id: str) -> JSONResponse:
    status = 504 if isinstance(e, SettlementTimeoutError) else 502
    return _error_response(HTTPException(status_code=status, detail=str(e)), req_id)


def _with_reason(error: Optional[str], reason: Optional[str]) -> str:
    return f"{error}: {reason}" if reason else str(error)


# -------------------------------
# Routes
# -------------------------------


@router.post("/usdc/submit")
async def submit_usdc_payment(
    body: DelegatedSubmitRequest,
    response: Response,
    cfg: GatewayRuntimeConfig = Depends(get_gateway_cfg),
    svc: PaymentService = Depends(get_payment_service),
):
    req_id = uuid.uuid4().hex
    response.headers["X-Request-ID"] = req_id
    network = body.network or cfg.default_network
    auth = body.authorization
    logger.info(
        f"[{req_id}] [GATEWAY] usdc submit network={network} from={auth.from_address} to={auth.to} value={auth.value}"
    )
    try:
        result = await svc.submit_delegated_payment(network, auth)
    except UnsupportedNetworkError as e:
        return _error_response(HTTPException(status_code=400, detail=str(e)), req_id)
    except TransportError as e:
        logger.error(f"[{req_id}] [GATEWAY] facilitator transport error: {e}")
        return _transport_error_response(e, req_id)
    except MalformedResponseError as e:
        logger.error(f"[{req_id}] [GATEWAY] malformed facilitator response: {e}")
        return _error_response(HTTPException(status_code=502, detail=f"Facilitator response invalid: {e}"), req_id)

    if not result.success:
        status = _DELEGATED_FAILURE_STATUS.get(result.error, 500)
        logger.warning(f"[{req_id}] [GATEWAY] usdc submit failed ({status}): {result.error} {result.reason}")
        return _error_response(HTTPException(status_code=status, detail=_with_reason(result.error, result.reason)), req_id)

    logger.info(f"[{req_id}] [GATEWAY] usdc settled tx={result.tx_hash}")
    return result.model_dump(by_alias=True, exclude_none=True)


@router.post("/cro/verify")
async def verify_cro_payment(
    body: DirectVerifyRequest,
    response: Response,
    cfg: GatewayRuntimeConfig = Depends(get_gateway_cfg),
    svc: PaymentService = Depends(get_payment_service),
):
    req_id = uuid.uuid4().hex
    response.headers["X-Request-ID"] = req_id
    network = body.network or cfg.default_network
    min_conf = body.min_confirmations if body.min_confirmations is not None else cfg.min_confirmations
    logger.info(f"[{req_id}] [GATEWAY] cro verify network={network} tx={body.tx_hash}")
    try:
        result = await svc.verify_direct_payment(
            network, body.tx_hash, body.expected_recipient, body.expected_amount, min_confirmations=min_conf
        )
    except UnsupportedNetworkError as e:
        return _error_response(HTTPException(status_code=400, detail=str(e)), req_id)
    except PaymentValidationError as e:
        logger.info(f"[{req_id}] [GATEWAY] cro verify rejected locally ({e.code.value}): {e.message}")
        detail = e.message if e.message.lower().startswith("invalid amount") else f"Invalid amount: {e.message}"
        return _error_response(HTTPException(status_code=400, detail=detail), req_id)
    except TransportError as e:
        logger.error(f"[{req_id}] [GATEWAY] RPC transport error: {e}")
        return _transport_error_response(e, req_id)

    if not result.valid:
        return _error_response(HTTPException(status_code=400, detail=_with_reason(result.error, result.reason)), req_id)
    return result.model_dump(by_alias=True, exclude_none=True)


@router.get("/facilitator/health")
async def facilitator_health(response: Response, svc: PaymentService = Depends(get_payment_service)):
    req_id = uuid.uuid4().hex
    response.headers["X-Request-ID"] = req_id
    try:
        health = await svc.facilitator_health()
    except (TransportError, MalformedResponseError) as e:
        logger.warning(f"[{req_id}] [GATEWAY] facilitator health fetch failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"healthy": False, "status": "unhealthy", "error": str(e)},
            headers={"X-Request-ID": req_id},
        )
    if not health.healthy:
        return JSONResponse(
            status_code=503,
            content=health.model_dump(exclude_none=True),
            headers={"X-Request-ID": req_id},
        )
    return health.model_dump(exclude_none=True)


@router.get("/facilitator/supported")
async def facilitator_supported(response: Response, svc: PaymentService = Depends(get_payment_service)):
    req_id = uuid.uuid4().hex
    response.headers["X-Request-ID"] = req_id
    try:
        supported = await svc.supported_networks_and_assets()
    except TransportError as e:
        logger.error(f"[{req_id}] [GATEWAY] facilitator transport error: {e}")
        return _transport_error_response(e, req_id)
    except MalformedResponseError as e:
        return _error_response(HTTPException(status_code=502, detail=f"Facilitator response invalid: {e}"), req_id)
    return supported.model_dump(by_alias=True)
