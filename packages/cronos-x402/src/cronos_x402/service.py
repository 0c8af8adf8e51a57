# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Inbound payment API: the operations a backend exposes to its frontend.

Results are pydantic models that serialize with camelCase aliases.
Unknown networks raise ``UnsupportedNetworkError``; facilitator and RPC
transport failures propagate as ``TransportError``.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .authorization import SignedTransferAuthorization, validate_signed_authorization
from .direct import DEFAULT_MIN_CONFIRMATIONS, DirectTransferVerifier
from .errors import PaymentValidationError
from .networks import get_network
from .settlement import SettlementClient, SupportedNetworksResponse

logger = logging.getLogger(__name__)

INVALID_AUTHORIZATION = "Invalid authorization"
VERIFICATION_FAILED = "Verification failed"
SETTLEMENT_FAILED = "Payment settlement failed"


class DelegatedPaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    tx_hash: Optional[str] = Field(None, alias="txHash")
    explorer_url: Optional[str] = Field(None, alias="explorerUrl")
    network: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None


class DirectPaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    tx_hash: str = Field(..., alias="txHash")
    receipt: Optional[Dict[str, Any]] = None
    explorer_url: Optional[str] = Field(None, alias="explorerUrl")
    network: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    confirmations: Optional[int] = None


class FacilitatorHealthResponse(BaseModel):
    healthy: bool
    status: str
    timestamp: Optional[Union[int, float]] = None
    error: Optional[str] = None


class PaymentService:
    def __init__(
        self,
        settlement: SettlementClient,
        verifier: DirectTransferVerifier,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.settlement = settlement
        self.verifier = verifier
        self._clock = clock

    async def submit_delegated_payment(
        self,
        network: str,
        authorization: Union[SignedTransferAuthorization, Mapping[str, Any]],
    ) -> DelegatedPaymentResponse:
        """Validate locally, then verify and settle through the facilitator."""
        net = get_network(network)
        try:
            if not isinstance(authorization, SignedTransferAuthorization):
                authorization = SignedTransferAuthorization.model_validate(authorization)
            validate_signed_authorization(authorization, int(self._clock()))
        except PaymentValidationError as e:
            logger.info(f"[SERVICE] rejected authorization locally ({e.code.value}): {e.message}")
            return DelegatedPaymentResponse(success=False, error=INVALID_AUTHORIZATION, reason=e.message)
        except ValidationError as e:
            return DelegatedPaymentResponse(success=False, error=INVALID_AUTHORIZATION, reason=str(e))

        result = await self.settlement.verify_and_settle(net, net.stable_asset.address, authorization)
        if result.verification_failed:
            return DelegatedPaymentResponse(success=False, error=VERIFICATION_FAILED, reason=result.reason)
        if not result.success or not result.tx_hash:
            return DelegatedPaymentResponse(
                success=False,
                error=SETTLEMENT_FAILED,
                reason=result.reason or result.error,
            )
        return DelegatedPaymentResponse(
            success=True,
            tx_hash=result.tx_hash,
            explorer_url=net.tx_url(result.tx_hash),
            network=net.network,
        )

    async def verify_direct_payment(
        self,
        network: str,
        tx_hash: str,
        expected_recipient: str,
        expected_amount: str,
        min_confirmations: int = DEFAULT_MIN_CONFIRMATIONS,
    ) -> DirectPaymentResponse:
        net = get_network(network)
        result = await self.verifier.verify(
            tx_hash, expected_recipient, expected_amount, net, min_confirmations=min_confirmations
        )
        if not result.valid:
            return DirectPaymentResponse(
                valid=False,
                tx_hash=tx_hash,
                error=result.title,
                reason=result.reason,
                confirmations=result.confirmations,
            )
        return DirectPaymentResponse(
            valid=True,
            tx_hash=tx_hash,
            receipt=result.receipt,
            explorer_url=net.tx_url(tx_hash),
            network=net.network,
            confirmations=result.confirmations,
        )

    async def facilitator_health(self) -> FacilitatorHealthResponse:
        health = await self.settlement.health()
        return FacilitatorHealthResponse(
            healthy=health.status == "healthy",
            status=health.status,
            timestamp=health.timestamp,
        )

    async def supported_networks_and_assets(self) -> SupportedNetworksResponse:
        return await self.settlement.supported_networks()
