# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
import os
import sys
import time
from typing import Any, Dict, Mapping, Optional

import pytest
import pytest_asyncio


def _add_project_paths_to_syspath() -> None:
    root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    for p in (
        root,
        os.path.join(root, "packages", "cronos-x402", "src"),
        os.path.join(root, "gateway", "src"),
        os.path.dirname(os.path.abspath(__file__)),
    ):
        if p not in sys.path:
            sys.path.insert(0, p)


_add_project_paths_to_syspath()


# Import after adding to syspath
from cronos_x402.signer import LocalAccountSigner  # noqa: E402

TEST_PRIVATE_KEY = "0x" + "a" * 64
MERCHANT = "0x" + "c" * 40
FIXED_NOW = 1_700_000_000


@pytest.fixture
def test_env(monkeypatch) -> None:
    """Set up test environment variables."""
    monkeypatch.setenv("CRONOS_FACILITATOR_URL", "https://facilitator.test")
    monkeypatch.setenv("CRONOS_FACILITATOR_TIMEOUT_S", "5")
    monkeypatch.setenv("CRONOS_DEFAULT_NETWORK", "cronos-testnet")
    monkeypatch.setenv("CRONOS_MIN_CONFIRMATIONS", "2")
    monkeypatch.setenv("CRONOS_TESTNET_RPC_URL", "https://rpc.test")


@pytest.fixture
def signer() -> LocalAccountSigner:
    return LocalAccountSigner.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def merchant() -> str:
    return MERCHANT


@pytest.fixture
def now() -> int:
    return int(time.time())


class FakeChainReader:
    """In-memory ChainReader keyed by transaction hash."""

    def __init__(
        self,
        receipts: Optional[Dict[str, Mapping[str, Any]]] = None,
        transactions: Optional[Dict[str, Mapping[str, Any]]] = None,
        block_number: int = 100,
        balances: Optional[Dict[str, int]] = None,
        contract_results: Optional[Dict[str, Any]] = None,
    ):
        self.receipts = receipts or {}
        self.transactions = transactions or {}
        self.block_number = block_number
        self.balances = balances or {}
        self.contract_results = contract_results or {}
        self.calls = []

    async def get_transaction_receipt(self, tx_hash: str):
        self.calls.append(("receipt", tx_hash))
        return self.receipts.get(tx_hash)

    async def get_transaction(self, tx_hash: str):
        self.calls.append(("transaction", tx_hash))
        return self.transactions.get(tx_hash)

    async def get_block_number(self) -> int:
        self.calls.append(("blockNumber",))
        return self.block_number

    async def get_balance(self, address: str) -> int:
        self.calls.append(("balance", address))
        result = self.balances.get(address.lower(), 0)
        if isinstance(result, Exception):
            raise result
        return result

    async def call_contract(self, address: str, fn_name: str, *args):
        self.calls.append(("call", address, fn_name) + args)
        result = self.contract_results[fn_name]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_reader() -> FakeChainReader:
    return FakeChainReader()


@pytest.fixture
def sample_wire_authorization(now) -> dict:
    """Signed authorization in wire form (values are decimal strings)."""
    return {
        "from": "0x" + "b" * 40,
        "to": MERCHANT,
        "value": "10000",  # 0.01 USDC.e
        "validAfter": "0",
        "validBefore": str(now + 3600),
        "nonce": "0x" + "1" * 64,
        "signature": "0x" + "d" * 130,
    }


@pytest.fixture
def facilitator_app():
    from mock_facilitator import create_app

    return create_app()


@pytest_asyncio.fixture
async def settlement_client(facilitator_app):
    """SettlementClient wired to the in-process mock facilitator."""
    import httpx
    from cronos_x402.settlement import SettlementClient, SettlementConfig

    client = SettlementClient(
        SettlementConfig(base_url="https://facilitator.test", timeout_s=5),
        transport=httpx.ASGITransport(app=facilitator_app),
    )
    yield client
    await client.aclose()
