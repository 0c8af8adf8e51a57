# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
EIP-3009 transfer authorizations: construction and invariant checks.

An authorization lets a settlement service move ``value`` base units of a
token from ``from`` to ``to`` inside the ``[validAfter, validBefore)``
window. Single use is enforced on-chain by the token contract through the
``nonce``; nothing here tracks which nonces were spent.
"""
from __future__ import annotations

import secrets
import time
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Dict, Optional, Union

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field

from .errors import PaymentValidationError, ValidationCode
from .networks import STABLE_DECIMALS, ZERO_ADDRESS

DEFAULT_VALIDITY_WINDOW = 3600
NONCE_BYTES = 32
SIGNATURE_BYTES = 65


def _now() -> int:
    return int(time.time())


def _require(cond: bool, code: ValidationCode, msg: str) -> None:
    if not cond:
        raise PaymentValidationError(code, msg)


def _hex_byte_length(value: str) -> Optional[int]:
    if not isinstance(value, str) or not value.startswith("0x"):
        return None
    try:
        return len(bytes.fromhex(value[2:]))
    except ValueError:
        return None


class TransferAuthorization(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_address: str = Field(..., alias="from")
    to: str
    value: int
    valid_after: int = Field(0, alias="validAfter")
    valid_before: int = Field(..., alias="validBefore")
    nonce: str

    def to_wire(self) -> Dict[str, str]:
        """Wire form: camelCase keys, integers as decimal strings."""
        return {
            "from": self.from_address,
            "to": self.to,
            "value": str(self.value),
            "validAfter": str(self.valid_after),
            "validBefore": str(self.valid_before),
            "nonce": self.nonce,
        }

    def typed_message(self) -> Dict[str, Any]:
        # eth_account wants bytes for bytes32 fields
        return {
            "from": to_checksum_address(self.from_address),
            "to": to_checksum_address(self.to),
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": bytes.fromhex(self.nonce[2:]),
        }


class SignedTransferAuthorization(TransferAuthorization):
    signature: str

    @property
    def unsigned(self) -> TransferAuthorization:
        return TransferAuthorization.model_validate(self.model_dump(exclude={"signature"}))

    def to_wire(self) -> Dict[str, str]:
        out = super().to_wire()
        out["signature"] = self.signature
        return out


# -------------------------------
# Units
# -------------------------------


def to_base_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """Convert a human-readable amount ("0.01") to integer base units.

    Exact: amounts with more fractional digits than ``decimals`` are rejected
    rather than rounded.
    """
    try:
        d = Decimal(str(amount).strip())
    except InvalidOperation:
        raise PaymentValidationError(ValidationCode.INVALID_AMOUNT, f"Invalid amount: {amount!r}") from None
    _require(d.is_finite(), ValidationCode.INVALID_AMOUNT, f"Invalid amount: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = d.scaleb(decimals)
        _require(
            scaled == scaled.to_integral_value(),
            ValidationCode.INVALID_AMOUNT,
            f"Amount {amount} has more than {decimals} decimal places",
        )
        return int(scaled)


def from_base_units(value: int, decimals: int) -> str:
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(int(value)), 10**decimals)
    frac_s = str(frac).rjust(decimals, "0").rstrip("0") if decimals else ""
    return f"{sign}{whole}.{frac_s}" if frac_s else f"{sign}{whole}"


# -------------------------------
# Builder
# -------------------------------


def generate_nonce(now_ms: Optional[int] = None) -> str:
    """32-byte nonce: 8-byte big-endian millisecond timestamp + 24 random bytes.

    Sortable by creation time and unique without a central allocator.
    """
    ts = int(time.time() * 1000) if now_ms is None else now_ms
    return "0x" + ts.to_bytes(8, "big").hex() + secrets.token_bytes(24).hex()


def nonce_timestamp_ms(nonce: str) -> int:
    return int(nonce[2:18], 16)


def normalize_address(address: str, *, role: str = "address") -> str:
    _require(
        isinstance(address, str) and is_address(address),
        ValidationCode.INVALID_ADDRESS,
        f"Invalid {role} address: {address!r}",
    )
    return to_checksum_address(address)


def build_transfer_authorization(
    payer: str,
    recipient: str,
    amount: str,
    *,
    decimals: int = STABLE_DECIMALS,
    validity_window: int = DEFAULT_VALIDITY_WINDOW,
    now: Optional[int] = None,
) -> TransferAuthorization:
    """Create an unsigned authorization valid from now for ``validity_window`` seconds.

    Args:
        payer: Sender address (0x...)
        recipient: Recipient address (0x...)
        amount: Human-readable amount in the asset's units (e.g. "0.01")
        decimals: Asset decimal scale (6 for USDC.e, 18 for CRO)
        validity_window: Seconds until ``validBefore``
        now: Override for the current unix time

    Raises:
        PaymentValidationError: malformed address or non-positive amount
    """
    from_address = normalize_address(payer, role="payer")
    to_address = normalize_address(recipient, role="recipient")
    value = to_base_units(amount, decimals)
    _require(value > 0, ValidationCode.NON_POSITIVE_AMOUNT, "Transfer amount must be positive")
    now = _now() if now is None else now
    return TransferAuthorization(
        from_address=from_address,
        to=to_address,
        value=value,
        valid_after=0,
        valid_before=now + validity_window,
        nonce=generate_nonce(),
    )


# -------------------------------
# Validator
# -------------------------------


def validate_transfer_authorization(auth: TransferAuthorization, now: Optional[int] = None) -> None:
    """Raise the first violated invariant as PaymentValidationError. No I/O."""
    now = _now() if now is None else now
    _require(auth.value > 0, ValidationCode.NON_POSITIVE_AMOUNT, "Transfer amount must be positive")
    _require(
        auth.from_address.lower() != auth.to.lower(),
        ValidationCode.SELF_TRANSFER,
        "Cannot transfer to self",
    )
    _require(auth.to.lower() != ZERO_ADDRESS, ValidationCode.ZERO_RECIPIENT, "Cannot transfer to zero address")
    _require(auth.valid_before > now, ValidationCode.EXPIRED, "Authorization has expired")
    _require(auth.valid_after <= now, ValidationCode.NOT_YET_VALID, "Authorization not yet valid")
    _require(_hex_byte_length(auth.nonce) == NONCE_BYTES, ValidationCode.INVALID_NONCE, "Invalid nonce format")


def validate_signed_authorization(auth: SignedTransferAuthorization, now: Optional[int] = None) -> None:
    validate_transfer_authorization(auth, now)
    _require(
        _hex_byte_length(auth.signature) == SIGNATURE_BYTES,
        ValidationCode.INVALID_SIGNATURE,
        "Invalid signature format",
    )
