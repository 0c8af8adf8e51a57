# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
EIP-712 signing of EIP-3009 TransferWithAuthorization messages.

Key custody stays outside this module: signing goes through a
``SigningCapability`` bound to the payer's account. ``LocalAccountSigner``
is one such capability for software keys held by the caller; hardware
wallets or remote signers plug in the same way.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Union

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from .authorization import (
    SignedTransferAuthorization,
    TransferAuthorization,
    build_transfer_authorization,
    validate_transfer_authorization,
)
from .errors import PaymentValidationError, ValidationCode
from .networks import NetworkDescriptor, get_network

PRIMARY_TYPE = "TransferWithAuthorization"

TRANSFER_WITH_AUTHORIZATION_TYPES = {
    PRIMARY_TYPE: [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


class SigningCapability(Protocol):
    """Signs EIP-712 typed data on behalf of ``address``.

    ``typed_fields`` holds ``types``, ``primaryType`` and ``message``.
    Returns a 0x-prefixed 65-byte signature.
    """

    address: str

    async def sign(self, domain: Dict[str, Any], typed_fields: Dict[str, Any]) -> str: ...


class LocalAccountSigner:
    def __init__(self, account: LocalAccount):
        self._account = account
        self.address = account.address

    @classmethod
    def from_key(cls, private_key: str) -> "LocalAccountSigner":
        return cls(Account.from_key(private_key))

    async def sign(self, domain: Dict[str, Any], typed_fields: Dict[str, Any]) -> str:
        signable = encode_typed_data(
            domain_data=domain,
            message_types=typed_fields["types"],
            message_data=typed_fields["message"],
        )
        signed = self._account.sign_message(signable)
        return "0x" + bytes(signed.signature).hex()


def _resolve(network: Union[str, NetworkDescriptor]) -> NetworkDescriptor:
    return network if isinstance(network, NetworkDescriptor) else get_network(network)


def transfer_domain(network: Union[str, NetworkDescriptor]) -> Dict[str, Any]:
    """EIP-712 domain of the network's stable asset.

    The chain id is part of the domain, so a signature is only valid on the
    network it was produced for.
    """
    net = _resolve(network)
    asset = net.stable_asset
    return {
        "name": asset.name,
        "version": asset.version,
        "chainId": net.chain_id,
        "verifyingContract": asset.address,
    }


def typed_fields(auth: TransferAuthorization) -> Dict[str, Any]:
    return {
        "types": TRANSFER_WITH_AUTHORIZATION_TYPES,
        "primaryType": PRIMARY_TYPE,
        "message": auth.typed_message(),
    }


async def sign_transfer_authorization(
    auth: TransferAuthorization,
    signer: SigningCapability,
    network: Union[str, NetworkDescriptor],
    *,
    now: Optional[int] = None,
) -> SignedTransferAuthorization:
    """Validate, then sign ``auth`` under the network's EIP-712 domain.

    Raises:
        PaymentValidationError: invariant violation, or the signer is not the payer
    """
    validate_transfer_authorization(auth, now)
    if signer.address.lower() != auth.from_address.lower():
        raise PaymentValidationError(
            ValidationCode.SIGNER_MISMATCH,
            f"Signer {signer.address} does not control payer {auth.from_address}",
        )
    signature = await signer.sign(transfer_domain(network), typed_fields(auth))
    return SignedTransferAuthorization(**auth.model_dump(), signature=signature)


async def create_and_sign_transfer(
    recipient: str,
    amount: str,
    signer: SigningCapability,
    network: Union[str, NetworkDescriptor],
    *,
    validity_window: Optional[int] = None,
) -> SignedTransferAuthorization:
    net = _resolve(network)
    kwargs: Dict[str, Any] = {"decimals": net.stable_asset.decimals}
    if validity_window is not None:
        kwargs["validity_window"] = validity_window
    auth = build_transfer_authorization(signer.address, recipient, amount, **kwargs)
    return await sign_transfer_authorization(auth, signer, net)


def recover_authorization_signer(
    signed: SignedTransferAuthorization, network: Union[str, NetworkDescriptor]
) -> str:
    fields = typed_fields(signed)
    signable = encode_typed_data(
        domain_data=transfer_domain(network),
        message_types=fields["types"],
        message_data=fields["message"],
    )
    sig = bytes.fromhex(signed.signature[2:] if signed.signature.startswith("0x") else signed.signature)
    return Account.recover_message(signable, signature=sig)
