# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Read-only chain queries against any EVM JSON-RPC endpoint.

``ChainReader`` is the capability the direct-transfer verifier and the
balance helpers depend on; ``Web3ChainReader`` implements it on top of
``web3.AsyncWeb3``.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception

from .authorization import from_base_units, to_base_units
from .errors import TransportError
from .networks import NetworkDescriptor

logger = logging.getLogger(__name__)

DEFAULT_RPC_TIMEOUT_S = 15.0

# Minimal ERC20 ABI (balanceOf / decimals / symbol / name)
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class ChainReader(Protocol):
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]: ...

    async def get_transaction(self, tx_hash: str) -> Optional[Mapping[str, Any]]: ...

    async def get_block_number(self) -> int: ...

    async def get_balance(self, address: str) -> int: ...

    async def call_contract(self, address: str, fn_name: str, *args: Any) -> Any: ...


class Web3ChainReader:
    def __init__(self, rpc_url: str, *, timeout_s: float = DEFAULT_RPC_TIMEOUT_S):
        if not rpc_url:
            raise ValueError("rpc_url required for Web3ChainReader")
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    @classmethod
    def for_network(cls, network: NetworkDescriptor) -> "Web3ChainReader":
        return cls(network.rpc_url)

    async def _call(self, what: str, aw):
        try:
            return await asyncio.wait_for(aw, timeout=self.timeout_s)
        except TransactionNotFound:
            return None
        except asyncio.TimeoutError as e:
            raise TransportError(f"RPC {what} timeout after {self.timeout_s}s", url=self.rpc_url) from e
        except (Web3Exception, aiohttp.ClientError, OSError) as e:
            logger.warning(f"[CHAIN] RPC {what} failed on {self.rpc_url}: {e}")
            raise TransportError(f"RPC {what} failed: {e}", url=self.rpc_url) from e
        except ValueError as e:
            # web3 6.x raises JSON-RPC error responses as ValueError({"code": ..., "message": ...})
            if not (e.args and isinstance(e.args[0], Mapping)):
                raise
            logger.warning(f"[CHAIN] RPC {what} error response from {self.rpc_url}: {e.args[0]}")
            raise TransportError(f"RPC {what} failed: {e.args[0].get('message', e)}", url=self.rpc_url) from e

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        return await self._call("getTransactionReceipt", self.w3.eth.get_transaction_receipt(tx_hash))

    async def get_transaction(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        return await self._call("getTransaction", self.w3.eth.get_transaction(tx_hash))

    async def get_block_number(self) -> int:
        return await self._call("blockNumber", self.w3.eth.block_number)

    async def get_balance(self, address: str) -> int:
        return await self._call("getBalance", self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)))

    async def call_contract(self, address: str, fn_name: str, *args: Any) -> Any:
        contract = self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=ERC20_ABI)
        fn = getattr(contract.functions, fn_name)
        return await self._call(fn_name, fn(*args).call())


# -------------------------------
# Balances
# -------------------------------


@dataclass
class NativeBalance:
    address: str
    network: str
    chain_id: int
    symbol: str
    balance_wei: int
    balance_formatted: str
    decimals: int


@dataclass
class TokenBalance:
    address: str
    network: str
    chain_id: int
    token_address: str
    token_symbol: str
    token_name: str
    decimals: int
    balance: int
    balance_formatted: str


async def get_native_balance(reader: ChainReader, address: str, network: NetworkDescriptor) -> NativeBalance:
    wei = await reader.get_balance(address)
    decimals = network.native_asset.decimals
    return NativeBalance(
        address=address,
        network=network.network,
        chain_id=network.chain_id,
        symbol=network.native_asset.symbol,
        balance_wei=wei,
        balance_formatted=from_base_units(wei, decimals),
        decimals=decimals,
    )


async def get_token_balance(
    reader: ChainReader, address: str, token_address: str, network: NetworkDescriptor
) -> TokenBalance:
    """Read balance and metadata of an arbitrary ERC20 token concurrently."""
    raw, decimals, symbol, name = await asyncio.gather(
        reader.call_contract(token_address, "balanceOf", AsyncWeb3.to_checksum_address(address)),
        reader.call_contract(token_address, "decimals"),
        reader.call_contract(token_address, "symbol"),
        reader.call_contract(token_address, "name"),
    )
    return TokenBalance(
        address=address,
        network=network.network,
        chain_id=network.chain_id,
        token_address=token_address,
        token_symbol=str(symbol),
        token_name=str(name),
        decimals=int(decimals),
        balance=int(raw),
        balance_formatted=from_base_units(int(raw), int(decimals)),
    )


async def get_stable_balance(reader: ChainReader, address: str, network: NetworkDescriptor) -> TokenBalance:
    asset = network.stable_asset
    raw = int(await reader.call_contract(asset.address, "balanceOf", AsyncWeb3.to_checksum_address(address)))
    return TokenBalance(
        address=address,
        network=network.network,
        chain_id=network.chain_id,
        token_address=asset.address,
        token_symbol=asset.symbol,
        token_name=asset.name,
        decimals=asset.decimals,
        balance=raw,
        balance_formatted=from_base_units(raw, asset.decimals),
    )


async def get_balances_summary(reader: ChainReader, address: str, network: NetworkDescriptor) -> dict:
    """Native and stable balances; a side that fails is logged and reported as None."""
    native, stable = await asyncio.gather(
        get_native_balance(reader, address, network),
        get_stable_balance(reader, address, network),
        return_exceptions=True,
    )
    if isinstance(native, Exception):
        logger.error(f"[CHAIN] Failed to get native balance for {address}: {native}")
        native = None
    if isinstance(stable, Exception):
        logger.error(f"[CHAIN] Failed to get stable balance for {address}: {stable}")
        stable = None
    return {"native": native, "stable": stable}


async def check_native_balance(reader: ChainReader, address: str, amount: str, network: NetworkDescriptor) -> dict:
    decimals = network.native_asset.decimals
    balance = await reader.get_balance(address)
    required = to_base_units(amount, decimals)
    return {
        "sufficient": balance >= required,
        "balance": from_base_units(balance, decimals),
        "required": amount,
    }
