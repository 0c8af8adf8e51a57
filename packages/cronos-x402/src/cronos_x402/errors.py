# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from enum import Enum
from typing import Optional


class PaymentError(Exception):
    pass


class ValidationCode(str, Enum):
    INVALID_ADDRESS = "invalid address"
    INVALID_AMOUNT = "invalid amount"
    NON_POSITIVE_AMOUNT = "amount must be positive"
    SELF_TRANSFER = "self transfer"
    ZERO_RECIPIENT = "zero address recipient"
    EXPIRED = "expired"
    NOT_YET_VALID = "not yet valid"
    INVALID_NONCE = "invalid nonce format"
    INVALID_SIGNATURE = "invalid signature format"
    SIGNER_MISMATCH = "signer is not payer"
    UNSUPPORTED_ASSET = "unsupported asset"


class PaymentValidationError(PaymentError, ValueError):
    """A locally detected invariant violation. Never follows a network call."""

    def __init__(self, code: ValidationCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class UnsupportedNetworkError(PaymentError, ValueError):
    pass


class TransportError(PaymentError):
    """Timeout, connection failure or non-2xx response from a remote service.

    Safe to retry for read-only calls. For settle the on-chain outcome is
    unknown and must be re-queried before retrying.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.url = url


class SettlementTimeoutError(TransportError):
    pass


class MalformedResponseError(PaymentError):
    pass


class VerificationRejected(PaymentError):
    def __init__(self, reason: Optional[str]):
        super().__init__(f"Verification failed: {reason or 'unknown reason'}")
        self.reason = reason


class SettlementFailed(PaymentError):
    def __init__(self, reason: Optional[str]):
        super().__init__(f"Payment settlement failed: {reason or 'unknown reason'}")
        self.reason = reason


class DirectVerificationFailed(PaymentError):
    def __init__(self, failure, reason: Optional[str]):
        super().__init__(reason or str(failure))
        self.failure = failure
        self.reason = reason


class InvalidStateTransition(PaymentError):
    pass
