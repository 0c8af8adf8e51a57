# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Direct native CRO payments: the payer sends and pays gas for the transaction
themselves, and the verifier checks the resulting receipt after the fact.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .authorization import from_base_units, normalize_address, to_base_units
from .chain import ChainReader, Web3ChainReader
from .errors import DirectVerificationFailed, PaymentValidationError, ValidationCode
from .networks import NATIVE_ASSET_ADDRESS, NetworkDescriptor, get_network

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIRMATIONS = 2
NATIVE_TRANSFER_GAS = 21000


class DirectFailure(str, Enum):
    NOT_FOUND = "not found"
    REVERTED = "reverted"
    DETAILS_NOT_FOUND = "details not found"
    INVALID_RECIPIENT = "invalid recipient"
    INSUFFICIENT_AMOUNT = "insufficient amount"
    INSUFFICIENT_CONFIRMATIONS = "insufficient confirmations"


_FAILURE_TITLES = {
    DirectFailure.NOT_FOUND: "Transaction not found",
    DirectFailure.REVERTED: "Transaction failed",
    DirectFailure.DETAILS_NOT_FOUND: "Transaction details not found",
    DirectFailure.INVALID_RECIPIENT: "Invalid recipient",
    DirectFailure.INSUFFICIENT_AMOUNT: "Insufficient amount",
    DirectFailure.INSUFFICIENT_CONFIRMATIONS: "Insufficient confirmations",
}


@dataclass
class DirectTransaction:
    from_address: str
    to: str
    value: int
    chain_id: int
    nonce: Optional[int] = None
    gas_limit: Optional[int] = NATIVE_TRANSFER_GAS
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    def to_tx_params(self) -> Dict[str, Any]:
        """web3 TxParams for the payer's wallet; unset fields are left to the wallet."""
        params: Dict[str, Any] = {
            "from": self.from_address,
            "to": self.to,
            "value": self.value,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "gas": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass
class VerificationResult:
    valid: bool
    tx_hash: Optional[str] = None
    receipt: Optional[Dict[str, Any]] = None
    error: Optional[DirectFailure] = None
    reason: Optional[str] = None
    confirmations: Optional[int] = None

    @property
    def title(self) -> Optional[str]:
        return _FAILURE_TITLES.get(self.error) if self.error else None

    def raise_for_failure(self) -> None:
        if not self.valid:
            raise DirectVerificationFailed(self.error, self.reason or self.title)


def jsonable(value: Any) -> Any:
    """Convert web3 receipts (AttributeDict, HexBytes) to plain JSON values."""
    if isinstance(value, Mapping):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def _receipt_succeeded(status: Any) -> bool:
    if isinstance(status, str):
        return status.lower() in {"success", "0x1", "1"}
    return status == 1


def build_direct_transaction(
    payer: str, recipient: str, amount: str, network: Union[str, NetworkDescriptor]
) -> DirectTransaction:
    """Transaction parameters for a native transfer; fees are left to the wallet."""
    net = network if isinstance(network, NetworkDescriptor) else get_network(network)
    return DirectTransaction(
        from_address=normalize_address(payer, role="payer"),
        to=normalize_address(recipient, role="recipient"),
        value=to_base_units(amount, net.native_asset.decimals),
        chain_id=net.chain_id,
    )


def validate_direct_transaction(tx: DirectTransaction) -> None:
    if tx.value <= 0:
        raise PaymentValidationError(ValidationCode.NON_POSITIVE_AMOUNT, "Transfer amount must be positive")
    if tx.from_address.lower() == tx.to.lower():
        raise PaymentValidationError(ValidationCode.SELF_TRANSFER, "Cannot transfer to self")
    if tx.to.lower() == NATIVE_ASSET_ADDRESS:
        raise PaymentValidationError(ValidationCode.ZERO_RECIPIENT, "Cannot transfer to zero address")


def direct_payment_requirement(
    recipient: str,
    amount: str,
    network: Union[str, NetworkDescriptor],
    description: Optional[str] = None,
):
    from .router import PaymentRequirement

    net = network if isinstance(network, NetworkDescriptor) else get_network(network)
    # fail early on malformed amounts
    to_base_units(amount, net.native_asset.decimals)
    return PaymentRequirement(
        scheme="exact",
        network=net.network,
        max_amount_required=amount,
        pay_to=normalize_address(recipient, role="recipient"),
        asset=NATIVE_ASSET_ADDRESS,
        description=description or f"Pay {amount} {net.native_asset.symbol}",
        extra={"chainId": net.chain_id, "decimals": net.native_asset.decimals, "gasless": False},
    )


class DirectTransferVerifier:
    """Verify a payer-submitted native transfer by receipt inspection.

    Every check is a read; the caller re-invokes ``verify`` when the
    transaction does not yet have enough confirmations.
    """

    def __init__(self, reader_factory: Callable[[NetworkDescriptor], ChainReader] = Web3ChainReader.for_network):
        self.reader_factory = reader_factory

    async def verify(
        self,
        tx_hash: str,
        expected_recipient: str,
        expected_amount: str,
        network: Union[str, NetworkDescriptor],
        min_confirmations: int = DEFAULT_MIN_CONFIRMATIONS,
    ) -> VerificationResult:
        net = network if isinstance(network, NetworkDescriptor) else get_network(network)
        asset = net.native_asset
        expected_value = to_base_units(expected_amount, asset.decimals)
        if expected_value <= 0:
            raise PaymentValidationError(ValidationCode.NON_POSITIVE_AMOUNT, "Expected amount must be positive")
        reader = self.reader_factory(net)

        receipt = await reader.get_transaction_receipt(tx_hash)
        if not receipt:
            return self._reject(tx_hash, DirectFailure.NOT_FOUND, f"Transaction {tx_hash} not found")
        receipt_json = jsonable(receipt)

        if not _receipt_succeeded(receipt.get("status")):
            return self._reject(tx_hash, DirectFailure.REVERTED, "Transaction was reverted", receipt_json)

        tx = await reader.get_transaction(tx_hash)
        if not tx:
            return self._reject(tx_hash, DirectFailure.DETAILS_NOT_FOUND, "Transaction details not found", receipt_json)

        actual_to = tx.get("to")
        if (actual_to or "").lower() != expected_recipient.lower():
            return self._reject(
                tx_hash,
                DirectFailure.INVALID_RECIPIENT,
                f"Expected {expected_recipient}, got {actual_to}",
                receipt_json,
            )

        actual_value = int(tx.get("value") or 0)
        if actual_value < expected_value:
            return self._reject(
                tx_hash,
                DirectFailure.INSUFFICIENT_AMOUNT,
                f"Expected {from_base_units(expected_value, asset.decimals)} {asset.symbol}, "
                f"got {from_base_units(actual_value, asset.decimals)} {asset.symbol}",
                receipt_json,
            )

        current_block = await reader.get_block_number()
        confirmations = int(current_block) - int(receipt["blockNumber"])
        if confirmations < min_confirmations:
            result = self._reject(
                tx_hash,
                DirectFailure.INSUFFICIENT_CONFIRMATIONS,
                f"Transaction has {confirmations} confirmations, need {min_confirmations}",
                receipt_json,
            )
            result.confirmations = confirmations
            return result

        logger.info(f"[DIRECT] verified {tx_hash} on {net.network} ({confirmations} confirmations)")
        return VerificationResult(valid=True, tx_hash=tx_hash, receipt=receipt_json, confirmations=confirmations)

    @staticmethod
    def _reject(
        tx_hash: str,
        failure: DirectFailure,
        reason: str,
        receipt: Optional[Dict[str, Any]] = None,
    ) -> VerificationResult:
        logger.info(f"[DIRECT] {tx_hash} rejected ({failure.value}): {reason}")
        return VerificationResult(valid=False, tx_hash=tx_hash, receipt=receipt, error=failure, reason=reason)
