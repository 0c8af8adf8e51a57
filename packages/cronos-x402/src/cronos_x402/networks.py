# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Cronos network constants.

Contract addresses and endpoints follow the Cronos x402 facilitator API
reference. Two networks are known: mainnet (chain id 25) and testnet
(chain id 338). Each carries its bridged USDC (USDC.e) stable asset, which
supports EIP-3009 transferWithAuthorization, and the native CRO asset.

The EIP-712 domain for USDC.e is name 'Bridged USDC (Stargate)', version '1'.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from .errors import UnsupportedNetworkError

NATIVE_ASSET_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_ADDRESS = NATIVE_ASSET_ADDRESS

STABLE_DECIMALS = 6
NATIVE_DECIMALS = 18

FACILITATOR_BASE_URL = "https://facilitator.cronoslabs.org"
FACILITATOR_ENDPOINTS = MappingProxyType(
    {
        "health": "/healthcheck",
        "supported": "/v2/x402/supported",
        "verify": "/v2/x402/verify",
        "settle": "/v2/x402/settle",
    }
)

FAUCETS = MappingProxyType(
    {
        "native": "https://cronos.org/faucet",
        "stable": "https://faucet.cronos.org",
    }
)


@dataclass(frozen=True)
class AssetDescriptor:
    address: str
    name: str
    symbol: str
    decimals: int
    # EIP-712 domain version; None for assets that cannot sign
    version: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.address == NATIVE_ASSET_ADDRESS


@dataclass(frozen=True)
class NetworkDescriptor:
    network: str
    chain_id: int
    rpc_url: str
    explorer_url: str
    display_name: str
    stable_asset: AssetDescriptor
    native_asset: AssetDescriptor

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"

    def token_url(self, token: str) -> str:
        return f"{self.explorer_url}/token/{token}"


CRONOS_MAINNET = NetworkDescriptor(
    network="cronos-mainnet",
    chain_id=25,
    rpc_url="https://evm.cronos.org",
    explorer_url="https://cronoscan.com",
    display_name="Cronos",
    stable_asset=AssetDescriptor(
        address="0xf951eC28187D9E5Ca673Da8FE6757E6f0Be5F77C",
        name="Bridged USDC (Stargate)",
        symbol="USDC.e",
        decimals=STABLE_DECIMALS,
        version="1",
    ),
    native_asset=AssetDescriptor(
        address=NATIVE_ASSET_ADDRESS,
        name="Cronos",
        symbol="CRO",
        decimals=NATIVE_DECIMALS,
    ),
)

CRONOS_TESTNET = NetworkDescriptor(
    network="cronos-testnet",
    chain_id=338,
    rpc_url="https://evm-t3.cronos.org",
    explorer_url="https://testnet.cronoscan.com",
    display_name="Cronos Testnet",
    stable_asset=AssetDescriptor(
        address="0xc01efAaF7C5C61bEbFAeb358E1161b537b8bC0e0",
        name="Bridged USDC (Stargate)",
        symbol="devUSDC.e",
        decimals=STABLE_DECIMALS,
        version="1",
    ),
    native_asset=AssetDescriptor(
        address=NATIVE_ASSET_ADDRESS,
        name="Cronos",
        symbol="TCRO",
        decimals=NATIVE_DECIMALS,
    ),
)

NETWORKS: Mapping[str, NetworkDescriptor] = MappingProxyType(
    {n.network: n for n in (CRONOS_MAINNET, CRONOS_TESTNET)}
)


def is_supported_network(network: str) -> bool:
    return network in NETWORKS


def get_network(network: str) -> NetworkDescriptor:
    """Look up a network descriptor by its logical id.

    Raises:
        UnsupportedNetworkError: if the id is not one of the known networks
    """
    try:
        return NETWORKS[network]
    except KeyError:
        supported = ", ".join(sorted(NETWORKS))
        raise UnsupportedNetworkError(
            f"Unsupported network: {network}. Must be one of: {supported}"
        ) from None


def get_network_by_chain_id(chain_id: int) -> NetworkDescriptor:
    for n in NETWORKS.values():
        if n.chain_id == chain_id:
            return n
    raise UnsupportedNetworkError(f"Unsupported chain id: {chain_id}")


def is_native_asset(address: Optional[str]) -> bool:
    if not address:
        return False
    return address == "0x0" or address.lower() == NATIVE_ASSET_ADDRESS


def is_stable_asset(network: NetworkDescriptor, address: Optional[str]) -> bool:
    if not address:
        return False
    return address.lower() == network.stable_asset.address.lower()
