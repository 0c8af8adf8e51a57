# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
from .authorization import (
    SignedTransferAuthorization,
    TransferAuthorization,
    build_transfer_authorization,
    from_base_units,
    generate_nonce,
    to_base_units,
    validate_signed_authorization,
    validate_transfer_authorization,
)
from .chain import ChainReader, Web3ChainReader, get_balances_summary, check_native_balance
from .direct import DirectFailure, DirectTransferVerifier, VerificationResult
from .errors import (
    DirectVerificationFailed,
    InvalidStateTransition,
    MalformedResponseError,
    PaymentError,
    PaymentValidationError,
    SettlementFailed,
    SettlementTimeoutError,
    TransportError,
    UnsupportedNetworkError,
    ValidationCode,
    VerificationRejected,
)
from .networks import CRONOS_MAINNET, CRONOS_TESTNET, NETWORKS, NetworkDescriptor, get_network
from .otel import setup_otel_from_env
from .router import PayerContext, PaymentOutcome, PaymentRequirement, PaymentRouter, SettlementKind, settlement_kind
from .service import PaymentService
from .settlement import SettlementClient, SettlementClientFactory, SettlementConfig
from .signer import LocalAccountSigner, SigningCapability, create_and_sign_transfer, sign_transfer_authorization

__version__ = "0.1.0"

__all__ = [
    "CRONOS_MAINNET",
    "CRONOS_TESTNET",
    "NETWORKS",
    "NetworkDescriptor",
    "get_network",
    "TransferAuthorization",
    "SignedTransferAuthorization",
    "build_transfer_authorization",
    "validate_transfer_authorization",
    "validate_signed_authorization",
    "generate_nonce",
    "to_base_units",
    "from_base_units",
    "SigningCapability",
    "LocalAccountSigner",
    "sign_transfer_authorization",
    "create_and_sign_transfer",
    "SettlementConfig",
    "SettlementClient",
    "SettlementClientFactory",
    "ChainReader",
    "Web3ChainReader",
    "get_balances_summary",
    "check_native_balance",
    "DirectFailure",
    "DirectTransferVerifier",
    "VerificationResult",
    "SettlementKind",
    "settlement_kind",
    "PaymentRequirement",
    "PayerContext",
    "PaymentOutcome",
    "PaymentRouter",
    "PaymentService",
    "setup_otel_from_env",
    "PaymentError",
    "PaymentValidationError",
    "ValidationCode",
    "UnsupportedNetworkError",
    "TransportError",
    "SettlementTimeoutError",
    "MalformedResponseError",
    "VerificationRejected",
    "SettlementFailed",
    "DirectVerificationFailed",
    "InvalidStateTransition",
]
