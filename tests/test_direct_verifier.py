# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Tests for receipt-based verification of native CRO transfers.
"""
import pytest
from hexbytes import HexBytes

from cronos_x402.direct import (
    DirectFailure,
    DirectTransferVerifier,
    build_direct_transaction,
    direct_payment_requirement,
    jsonable,
    validate_direct_transaction,
)
from cronos_x402.errors import DirectVerificationFailed, PaymentValidationError, TransportError, ValidationCode
from cronos_x402.networks import CRONOS_TESTNET, NATIVE_ASSET_ADDRESS

TX = "0x" + "ab" * 32
RECIPIENT = "0x" + "c" * 40
ONE_CRO = 10**18


@pytest.fixture
def verifier(fake_reader):
    return DirectTransferVerifier(reader_factory=lambda network: fake_reader)


def _mined(fake_reader, *, status=1, to=RECIPIENT, value=ONE_CRO, block=95, current=100):
    fake_reader.receipts[TX] = {"status": status, "blockNumber": block, "transactionHash": HexBytes(TX)}
    fake_reader.transactions[TX] = {"to": to, "value": value, "hash": HexBytes(TX)}
    fake_reader.block_number = current


@pytest.mark.asyncio
class TestDirectTransferVerifier:
    async def test_valid_transfer(self, verifier, fake_reader):
        _mined(fake_reader)

        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)

        assert result.valid is True
        assert result.tx_hash == TX
        assert result.confirmations == 5
        # receipt is JSON-safe
        assert result.receipt["transactionHash"] == TX
        result.raise_for_failure()

    async def test_missing_receipt(self, verifier, fake_reader):
        result = await verifier.verify(TX, RECIPIENT, "1", "cronos-testnet")

        assert result.valid is False
        assert result.error == DirectFailure.NOT_FOUND
        assert result.title == "Transaction not found"
        # nothing past the receipt lookup is read
        assert [c[0] for c in fake_reader.calls] == ["receipt"]

    async def test_reverted_transaction(self, verifier, fake_reader):
        _mined(fake_reader, status=0)

        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)

        assert result.error == DirectFailure.REVERTED
        assert result.reason == "Transaction was reverted"
        assert result.title == "Transaction failed"

    async def test_missing_transaction_details(self, verifier, fake_reader):
        _mined(fake_reader)
        del fake_reader.transactions[TX]

        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)

        assert result.error == DirectFailure.DETAILS_NOT_FOUND

    async def test_recipient_match_is_case_insensitive(self, verifier, fake_reader):
        _mined(fake_reader, to=RECIPIENT.upper().replace("0X", "0x"))
        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)
        assert result.valid is True

    async def test_wrong_recipient(self, verifier, fake_reader):
        other = "0x" + "d" * 40
        _mined(fake_reader, to=other)

        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)

        assert result.error == DirectFailure.INVALID_RECIPIENT
        assert result.reason == f"Expected {RECIPIENT}, got {other}"

    async def test_underpayment(self, verifier, fake_reader):
        _mined(fake_reader, value=ONE_CRO // 2)

        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)

        assert result.error == DirectFailure.INSUFFICIENT_AMOUNT
        assert result.reason == "Expected 1 TCRO, got 0.5 TCRO"
        with pytest.raises(DirectVerificationFailed) as exc:
            result.raise_for_failure()
        assert exc.value.failure == DirectFailure.INSUFFICIENT_AMOUNT

    async def test_overpayment_accepted(self, verifier, fake_reader):
        _mined(fake_reader, value=2 * ONE_CRO)
        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)
        assert result.valid is True

    async def test_insufficient_confirmations(self, verifier, fake_reader):
        _mined(fake_reader, block=99, current=100)

        result = await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET, min_confirmations=2)

        assert result.error == DirectFailure.INSUFFICIENT_CONFIRMATIONS
        assert result.reason == "Transaction has 1 confirmations, need 2"
        assert result.confirmations == 1

    async def test_reverify_after_more_blocks(self, verifier, fake_reader):
        _mined(fake_reader, block=99, current=100)
        assert (await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)).valid is False

        fake_reader.block_number = 101
        assert (await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)).valid is True

    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_non_positive_expected_amount_rejected_before_reads(self, verifier, fake_reader, amount):
        _mined(fake_reader, value=0)

        with pytest.raises(PaymentValidationError) as exc:
            await verifier.verify(TX, RECIPIENT, amount, CRONOS_TESTNET)

        assert exc.value.code == ValidationCode.NON_POSITIVE_AMOUNT
        assert fake_reader.calls == []

    async def test_malformed_expected_amount_rejected_before_reads(self, verifier, fake_reader):
        with pytest.raises(PaymentValidationError) as exc:
            await verifier.verify(TX, RECIPIENT, "abc", CRONOS_TESTNET)

        assert exc.value.code == ValidationCode.INVALID_AMOUNT
        assert fake_reader.calls == []

    async def test_rpc_failure_propagates(self, fake_reader):
        async def broken(tx_hash):
            raise TransportError("RPC getTransactionReceipt failed: boom")

        fake_reader.get_transaction_receipt = broken
        verifier = DirectTransferVerifier(reader_factory=lambda network: fake_reader)

        with pytest.raises(TransportError):
            await verifier.verify(TX, RECIPIENT, "1", CRONOS_TESTNET)

    async def test_reader_built_for_requested_network(self, fake_reader):
        seen = []

        def factory(network):
            seen.append(network.chain_id)
            return fake_reader

        _mined(fake_reader)
        await DirectTransferVerifier(reader_factory=factory).verify(TX, RECIPIENT, "1", "cronos-mainnet")
        assert seen == [25]


class TestDirectTransactionHelpers:
    def test_build_direct_transaction(self):
        tx = build_direct_transaction("0x" + "b" * 40, RECIPIENT, "1.5", "cronos-testnet")
        assert tx.value == 15 * 10**17
        assert tx.chain_id == 338
        assert tx.gas_limit == 21000
        validate_direct_transaction(tx)
        assert tx.to_tx_params() == {
            "from": tx.from_address,
            "to": tx.to,
            "value": 15 * 10**17,
            "chainId": 338,
            "gas": 21000,
        }

    def test_validate_rejects_self_transfer(self):
        tx = build_direct_transaction(RECIPIENT, RECIPIENT, "1", CRONOS_TESTNET)
        with pytest.raises(PaymentValidationError) as exc:
            validate_direct_transaction(tx)
        assert exc.value.code == ValidationCode.SELF_TRANSFER

    def test_validate_rejects_zero_recipient(self):
        tx = build_direct_transaction(RECIPIENT, NATIVE_ASSET_ADDRESS, "1", CRONOS_TESTNET)
        with pytest.raises(PaymentValidationError) as exc:
            validate_direct_transaction(tx)
        assert exc.value.code == ValidationCode.ZERO_RECIPIENT

    def test_direct_payment_requirement(self):
        req = direct_payment_requirement(RECIPIENT, "2", "cronos-testnet")
        assert req.asset == NATIVE_ASSET_ADDRESS
        assert req.max_amount_required == "2"
        assert req.extra == {"chainId": 338, "decimals": 18, "gasless": False}
        assert req.model_dump(by_alias=True)["payTo"].lower() == RECIPIENT

    def test_jsonable_converts_bytes(self):
        assert jsonable({"a": [HexBytes("0x01"), b"\x02"], "b": 3}) == {"a": ["0x01", "0x02"], "b": 3}
