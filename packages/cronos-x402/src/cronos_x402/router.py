# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Payment routing across the two settlement kinds:

- DELEGATED: USDC.e via EIP-3009 + facilitator (gasless for the payer)
- DIRECT: native CRO sent by the payer's wallet (payer pays gas)

The kind is a function of (network, asset) only.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .authorization import DEFAULT_VALIDITY_WINDOW, SignedTransferAuthorization, build_transfer_authorization
from .direct import DEFAULT_MIN_CONFIRMATIONS, DirectTransferVerifier, VerificationResult
from .errors import (
    InvalidStateTransition,
    MalformedResponseError,
    PaymentValidationError,
    SettlementFailed,
    TransportError,
    ValidationCode,
    VerificationRejected,
)
from .networks import (
    NetworkDescriptor,
    get_network,
    is_native_asset,
    is_stable_asset,
    is_supported_network,
)
from .settlement import SettlementClient
from .signer import SigningCapability, sign_transfer_authorization

logger = logging.getLogger(__name__)


class SettlementKind(str, Enum):
    DELEGATED = "delegated"
    DIRECT = "direct"


def settlement_kind(network: str, asset: Optional[str]) -> Optional[SettlementKind]:
    """DELEGATED for the network's stable asset, DIRECT for the native asset, else None.

    Raises:
        UnsupportedNetworkError: unknown network
    """
    net = get_network(network)
    if is_stable_asset(net, asset):
        return SettlementKind.DELEGATED
    if is_native_asset(asset):
        return SettlementKind.DIRECT
    return None


class PaymentRequirement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scheme: str = "exact"
    network: str
    # human-readable amount in the asset's units, e.g. "0.01"
    max_amount_required: str = Field(..., alias="maxAmountRequired")
    pay_to: str = Field(..., alias="payTo")
    asset: str
    max_timeout_seconds: Optional[int] = Field(None, alias="maxTimeoutSeconds")
    resource: Optional[str] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")
    description: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


@dataclass
class PayerContext:
    accounts: Sequence[str] = ()
    signer: Optional[SigningCapability] = None

    @property
    def primary_account(self) -> Optional[str]:
        return self.accounts[0] if self.accounts else None


# -------------------------------
# Attempt state machine
# -------------------------------


class PaymentState(str, Enum):
    CREATED = "created"
    BUILT = "built"
    SIGNED = "signed"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    SETTLED = "settled"
    REJECTED = "rejected"
    SETTLEMENT_FAILED = "settlement_failed"
    EXPIRED = "expired"


TERMINAL_STATES = frozenset(
    {PaymentState.SETTLED, PaymentState.REJECTED, PaymentState.SETTLEMENT_FAILED, PaymentState.EXPIRED}
)

_TRANSITIONS = {
    PaymentState.CREATED: {PaymentState.BUILT},
    PaymentState.BUILT: {PaymentState.SIGNED},
    PaymentState.SIGNED: {PaymentState.VERIFYING},
    PaymentState.VERIFYING: {PaymentState.VERIFIED, PaymentState.REJECTED},
    PaymentState.VERIFIED: {PaymentState.SETTLED, PaymentState.SETTLEMENT_FAILED},
}


class PaymentAttempt:
    """One delegated payment attempt. Any non-terminal state may expire."""

    def __init__(self) -> None:
        self.state = PaymentState.CREATED
        self.history: List[PaymentState] = [PaymentState.CREATED]
        self.valid_before: Optional[int] = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: PaymentState) -> None:
        allowed = new_state == PaymentState.EXPIRED or new_state in _TRANSITIONS.get(self.state, ())
        if self.terminal or not allowed:
            raise InvalidStateTransition(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def expire_if_elapsed(self, now: int) -> bool:
        if self.terminal or self.valid_before is None or now < self.valid_before:
            return False
        self.advance(PaymentState.EXPIRED)
        return True


class PaymentStatus(str, Enum):
    SETTLED = "settled"
    REJECTED = "rejected"
    SETTLEMENT_FAILED = "settlement_failed"
    EXPIRED = "expired"
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    REQUIRES_WALLET = "requires_wallet"


@dataclass
class PaymentOutcome:
    status: PaymentStatus
    kind: Optional[SettlementKind]
    network: str
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    wallet_address: Optional[str] = None
    authorization: Optional[SignedTransferAuthorization] = None
    verification: Optional[VerificationResult] = None
    states: List[PaymentState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status in (PaymentStatus.SETTLED, PaymentStatus.VERIFIED)


class PaymentRouter:
    def __init__(
        self,
        settlement: SettlementClient,
        verifier: DirectTransferVerifier,
        *,
        default_validity_window: int = DEFAULT_VALIDITY_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        self.settlement = settlement
        self.verifier = verifier
        self.default_validity_window = default_validity_window
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def can_handle(self, requirement: PaymentRequirement, payer: PayerContext) -> bool:
        if not payer.accounts:
            return False
        if not is_supported_network(requirement.network):
            return False
        return settlement_kind(requirement.network, requirement.asset) is not None

    async def pay(
        self,
        requirement: PaymentRequirement,
        payer: PayerContext,
        *,
        tx_hash: Optional[str] = None,
        min_confirmations: int = DEFAULT_MIN_CONFIRMATIONS,
    ) -> PaymentOutcome:
        """Route one payment requirement.

        Validation errors and transport errors raise; business outcomes
        (rejection, settlement failure, expiry, missing wallet) are returned.
        A transport error during settle leaves the on-chain outcome unknown.
        """
        net = get_network(requirement.network)
        kind = settlement_kind(net.network, requirement.asset)
        if kind is None:
            raise PaymentValidationError(
                ValidationCode.UNSUPPORTED_ASSET,
                f"Unsupported asset {requirement.asset} on {net.network}",
            )
        if not payer.accounts:
            return PaymentOutcome(
                status=PaymentStatus.REQUIRES_WALLET,
                kind=kind,
                network=net.network,
                error="No wallet connected. Please connect a Cronos wallet.",
            )
        logger.info(f"[ROUTER] {kind.value} payment of {requirement.max_amount_required} to {requirement.pay_to} on {net.network}")
        if kind == SettlementKind.DELEGATED:
            return await self._pay_delegated(requirement, net, payer)
        return await self._pay_direct(requirement, net, payer, tx_hash, min_confirmations)

    async def _pay_delegated(
        self, requirement: PaymentRequirement, net: NetworkDescriptor, payer: PayerContext
    ) -> PaymentOutcome:
        if payer.signer is None:
            return PaymentOutcome(
                status=PaymentStatus.REQUIRES_WALLET,
                kind=SettlementKind.DELEGATED,
                network=net.network,
                error=f"{net.stable_asset.symbol} payment signing requires external wallet interaction",
                reason="No signing capability available for the payer account",
                wallet_address=payer.primary_account,
            )
        signer = payer.signer
        attempt = PaymentAttempt()
        auth = build_transfer_authorization(
            signer.address,
            requirement.pay_to,
            requirement.max_amount_required,
            decimals=net.stable_asset.decimals,
            validity_window=requirement.max_timeout_seconds or self.default_validity_window,
            now=self._now(),
        )
        attempt.valid_before = auth.valid_before
        attempt.advance(PaymentState.BUILT)

        signed = await sign_transfer_authorization(auth, signer, net, now=self._now())
        attempt.advance(PaymentState.SIGNED)

        outcome = PaymentOutcome(
            status=PaymentStatus.EXPIRED,
            kind=SettlementKind.DELEGATED,
            network=net.network,
            wallet_address=signer.address,
            authorization=signed,
            states=attempt.history,
        )
        if attempt.expire_if_elapsed(self._now()):
            outcome.error = "Authorization has expired"
            return outcome

        attempt.advance(PaymentState.VERIFYING)
        result = await self.settlement.verify_and_settle(net, net.stable_asset.address, signed)
        if result.verification_failed:
            attempt.advance(PaymentState.REJECTED)
            outcome.status = PaymentStatus.REJECTED
            outcome.error, outcome.reason = result.error, result.reason
            return outcome

        attempt.advance(PaymentState.VERIFIED)
        if result.success and result.tx_hash:
            attempt.advance(PaymentState.SETTLED)
            outcome.status = PaymentStatus.SETTLED
            outcome.tx_hash = result.tx_hash
            outcome.explorer_url = net.tx_url(result.tx_hash)
            return outcome

        attempt.advance(PaymentState.SETTLEMENT_FAILED)
        outcome.status = PaymentStatus.SETTLEMENT_FAILED
        outcome.error = result.error or "Payment settlement failed"
        outcome.reason = result.reason
        return outcome

    async def _pay_direct(
        self,
        requirement: PaymentRequirement,
        net: NetworkDescriptor,
        payer: PayerContext,
        tx_hash: Optional[str],
        min_confirmations: int,
    ) -> PaymentOutcome:
        if not tx_hash:
            return PaymentOutcome(
                status=PaymentStatus.REQUIRES_WALLET,
                kind=SettlementKind.DIRECT,
                network=net.network,
                error=(
                    f"Native {net.native_asset.symbol} payments require a wallet-submitted transaction. "
                    "Send the transfer from the payer's wallet and provide its hash."
                ),
                wallet_address=payer.primary_account,
            )
        verification = await self.verifier.verify(
            tx_hash,
            requirement.pay_to,
            requirement.max_amount_required,
            net,
            min_confirmations=min_confirmations,
        )
        return PaymentOutcome(
            status=PaymentStatus.VERIFIED if verification.valid else PaymentStatus.UNVERIFIED,
            kind=SettlementKind.DIRECT,
            network=net.network,
            tx_hash=tx_hash,
            explorer_url=net.tx_url(tx_hash),
            error=verification.title,
            reason=verification.reason,
            wallet_address=payer.primary_account,
            verification=verification,
        )

    async def settle_stable_payment(self, signed: SignedTransferAuthorization, network: str) -> str:
        """Verify and settle an already signed authorization; return the tx hash.

        Raises:
            VerificationRejected: the facilitator reported the authorization invalid
            SettlementFailed: verification passed but the on-chain submission failed
        """
        net = get_network(network)
        result = await self.settlement.verify_and_settle(net, net.stable_asset.address, signed)
        if result.verification_failed:
            raise VerificationRejected(result.reason)
        if not result.success or not result.tx_hash:
            raise SettlementFailed(result.reason or result.error)
        return result.tx_hash

    async def check_health(self) -> bool:
        try:
            health = await self.settlement.health()
        except (TransportError, MalformedResponseError) as e:
            logger.warning(f"[ROUTER] facilitator health check failed: {e}")
            return False
        return health.status == "healthy"
