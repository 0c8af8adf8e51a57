# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Cronos x402 facilitator client.

The facilitator makes USDC.e transfers gasless by:
1. verifying EIP-3009 signed authorizations (no on-chain effect)
2. submitting transferWithAuthorization on-chain and paying the gas
3. returning the transaction hash as settlement proof

Transport failures (timeouts, connection errors, non-2xx responses) raise
``TransportError``; business outcomes (``valid: false``, ``success: false``)
come back as results. Nothing is retried here. ``verify`` is side-effect
free, ``settle`` is not: after a settle timeout the outcome is unknown.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar, Union

import httpx
from opentelemetry import trace
from opentelemetry.propagate import inject
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .authorization import SignedTransferAuthorization
from .errors import MalformedResponseError, SettlementTimeoutError, TransportError
from .networks import FACILITATOR_BASE_URL, FACILITATOR_ENDPOINTS, NetworkDescriptor

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer("cronos_x402.settlement")

VERIFICATION_FAILED = "Verification failed"

M = TypeVar("M", bound=BaseModel)


# -------------------------------
# Models
# -------------------------------


class HealthStatus(BaseModel):
    status: Literal["healthy", "unhealthy"]
    timestamp: Optional[Union[int, float]] = None


class SupportedToken(BaseModel):
    address: str
    symbol: str
    decimals: int


class SupportedNetwork(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    network: str
    chain_id: int = Field(..., alias="chainId")
    tokens: List[SupportedToken] = Field(default_factory=list)


class SupportedNetworksResponse(BaseModel):
    networks: List[SupportedNetwork] = Field(default_factory=list)


class VerifyResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    reason: Optional[str] = None
    verification_id: Optional[str] = Field(None, alias="verificationId")


class SettleResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    tx_hash: Optional[str] = Field(None, alias="txHash")
    error: Optional[str] = None
    reason: Optional[str] = None
    # set only by verify_and_settle when verify rejected and settle was never called
    verification_failed: bool = Field(False, exclude=True)


# -------------------------------
# Config
# -------------------------------


@dataclass(frozen=True)
class SettlementConfig:
    base_url: str = FACILITATOR_BASE_URL
    timeout_s: float = 30.0
    headers: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        return cls(
            base_url=os.getenv("CRONOS_FACILITATOR_URL", FACILITATOR_BASE_URL),
            timeout_s=float(os.getenv("CRONOS_FACILITATOR_TIMEOUT_S", "30")),
        )


def _payment_body(
    network: Union[str, NetworkDescriptor],
    token: str,
    authorization: SignedTransferAuthorization,
    verification_id: Optional[str] = None,
) -> Dict[str, Any]:
    net = network.network if isinstance(network, NetworkDescriptor) else network
    body: Dict[str, Any] = {"network": net, "token": token, **authorization.to_wire()}
    if verification_id is not None:
        body["verificationId"] = verification_id
    return body


class SettlementClient:
    """Two-phase verify/settle client for the facilitator.

    Holds static configuration only and may be shared between tasks.
    """

    def __init__(
        self,
        cfg: Optional[SettlementConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cfg = cfg or SettlementConfig()
        if not self.cfg.base_url:
            raise ValueError("base_url required for SettlementClient")
        self.base_url = self.cfg.base_url.rstrip("/")
        self.http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.cfg.timeout_s,
            headers={"Content-Type": "application/json", **dict(self.cfg.headers)},
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "SettlementClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def health(self) -> HealthStatus:
        data = await self._request("GET", FACILITATOR_ENDPOINTS["health"])
        return _parse(HealthStatus, data, FACILITATOR_ENDPOINTS["health"])

    async def supported_networks(self) -> SupportedNetworksResponse:
        data = await self._request("GET", FACILITATOR_ENDPOINTS["supported"])
        return _parse(SupportedNetworksResponse, data, FACILITATOR_ENDPOINTS["supported"])

    async def verify(
        self,
        network: Union[str, NetworkDescriptor],
        token: str,
        authorization: SignedTransferAuthorization,
    ) -> VerifyResult:
        """Ask the facilitator to check signature, balance, window and nonce.

        Never changes on-chain state, so it is safe to retry.
        """
        body = _payment_body(network, token, authorization)
        logger.info(
            f"[SETTLEMENT] verify network={body['network']} from={authorization.from_address} "
            f"to={authorization.to} value={authorization.value}"
        )
        data = await self._request("POST", FACILITATOR_ENDPOINTS["verify"], json=body)
        result = _parse(VerifyResult, data, FACILITATOR_ENDPOINTS["verify"])
        if not result.valid:
            logger.info(f"[SETTLEMENT] verify rejected: {result.reason}")
        return result

    async def settle(
        self,
        network: Union[str, NetworkDescriptor],
        token: str,
        authorization: SignedTransferAuthorization,
        verification_id: Optional[str] = None,
    ) -> SettleResult:
        """Have the facilitator call transferWithAuthorization on-chain.

        Not idempotent on this side; correlate retries through ``verification_id``.
        """
        body = _payment_body(network, token, authorization, verification_id)
        logger.info(
            f"[SETTLEMENT] settle network={body['network']} nonce={authorization.nonce} "
            f"verification_id={verification_id}"
        )
        data = await self._request("POST", FACILITATOR_ENDPOINTS["settle"], json=body)
        result = _parse(SettleResult, data, FACILITATOR_ENDPOINTS["settle"])
        if result.success:
            logger.info(f"[SETTLEMENT] settled tx={result.tx_hash}")
        else:
            logger.warning(f"[SETTLEMENT] settle failed: error={result.error} reason={result.reason}")
        return result

    async def verify_and_settle(
        self,
        network: Union[str, NetworkDescriptor],
        token: str,
        authorization: SignedTransferAuthorization,
    ) -> SettleResult:
        v = await self.verify(network, token, authorization)
        if not v.valid:
            return SettleResult(success=False, error=VERIFICATION_FAILED, reason=v.reason, verification_failed=True)
        return await self.settle(network, token, authorization, verification_id=v.verification_id)

    async def _request(self, method: str, endpoint: str, *, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        with _tracer.start_as_current_span(f"facilitator {method} {endpoint}") as span:
            headers: Dict[str, str] = {}
            inject(headers)
            try:
                r = await asyncio.wait_for(
                    self.http.request(method, endpoint, json=json, headers=headers),
                    timeout=self.cfg.timeout_s,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                logger.warning(f"[SETTLEMENT] {method} {url} timed out after {self.cfg.timeout_s}s")
                raise SettlementTimeoutError(
                    f"Facilitator request timeout after {self.cfg.timeout_s}s", url=url
                ) from e
            except httpx.HTTPError as e:
                logger.warning(f"[SETTLEMENT] {method} {url} failed: {e}")
                raise TransportError(f"Facilitator request failed: {e}", url=url) from e

            span.set_attribute("http.status_code", r.status_code)
            if not r.is_success:
                raise TransportError(
                    f"Facilitator API error ({r.status_code}): {r.text}",
                    status_code=r.status_code,
                    body=r.text,
                    url=url,
                )
            if (r.headers.get("content-type") or "").split(";", 1)[0].strip().lower() != "application/json":
                raise MalformedResponseError(f"invalid content-type from {endpoint}")
            try:
                data = r.json()
            except ValueError as e:
                raise MalformedResponseError(f"invalid JSON from {endpoint}") from e
            if not isinstance(data, dict):
                raise MalformedResponseError(f"expected JSON object from {endpoint}")
            return data


def _parse(model: Type[M], data: Dict[str, Any], endpoint: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(f"unexpected response shape from {endpoint}: {e}") from e


class SettlementClientFactory:
    """Caller-owned cache of clients keyed by configuration."""

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._clients: Dict[SettlementConfig, SettlementClient] = {}

    def get(self, cfg: Optional[SettlementConfig] = None) -> SettlementClient:
        cfg = cfg or SettlementConfig()
        client = self._clients.get(cfg)
        if client is None:
            client = SettlementClient(cfg, transport=self._transport)
            self._clients[cfg] = client
        return client

    async def aclose(self) -> None:
        clients, self._clients = list(self._clients.values()), {}
        for c in clients:
            await c.aclose()
