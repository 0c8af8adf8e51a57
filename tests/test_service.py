# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Tests for the inbound PaymentService API against the mock facilitator.
"""
import pytest

from cronos_x402.direct import DirectTransferVerifier
from cronos_x402.errors import UnsupportedNetworkError
from cronos_x402.networks import CRONOS_TESTNET
from cronos_x402.service import PaymentService
from cronos_x402.signer import create_and_sign_transfer

TX = "0x" + "ab" * 32


@pytest.fixture
def service(settlement_client, fake_reader):
    return PaymentService(settlement_client, DirectTransferVerifier(reader_factory=lambda network: fake_reader))


@pytest.mark.asyncio
class TestSubmitDelegatedPayment:
    async def test_signed_authorization_settles(self, service, signer, merchant):
        signed = await create_and_sign_transfer(merchant, "0.01", signer, CRONOS_TESTNET)

        result = await service.submit_delegated_payment("cronos-testnet", signed)

        assert result.success is True
        body = result.model_dump(by_alias=True, exclude_none=True)
        assert body == {
            "success": True,
            "txHash": "0x" + "f" * 64,
            "explorerUrl": "https://testnet.cronoscan.com/tx/0x" + "f" * 64,
            "network": "cronos-testnet",
        }

    async def test_wire_form_accepted(self, service, sample_wire_authorization):
        result = await service.submit_delegated_payment("cronos-testnet", sample_wire_authorization)
        assert result.success is True

    async def test_expired_authorization_rejected_locally(self, service, facilitator_app, sample_wire_authorization):
        sample_wire_authorization["validBefore"] = "1"

        result = await service.submit_delegated_payment("cronos-testnet", sample_wire_authorization)

        assert result.success is False
        assert result.error == "Invalid authorization"
        assert result.reason == "Authorization has expired"
        assert facilitator_app.state.calls == []

    async def test_malformed_authorization_rejected_locally(self, service, facilitator_app, sample_wire_authorization):
        del sample_wire_authorization["signature"]

        result = await service.submit_delegated_payment("cronos-testnet", sample_wire_authorization)

        assert result.error == "Invalid authorization"
        assert facilitator_app.state.calls == []

    async def test_verification_rejected(self, service, facilitator_app, sample_wire_authorization):
        facilitator_app.state.verify_valid = False

        result = await service.submit_delegated_payment("cronos-testnet", sample_wire_authorization)

        assert result.success is False
        assert result.error == "Verification failed"
        assert result.reason == "Insufficient balance"

    async def test_settlement_failed(self, service, facilitator_app, sample_wire_authorization):
        facilitator_app.state.settle_success = False

        result = await service.submit_delegated_payment("cronos-testnet", sample_wire_authorization)

        assert result.error == "Payment settlement failed"
        assert result.reason == "Transaction reverted"

    async def test_settle_phase_verification_text_is_settlement_failure(
        self, service, facilitator_app, sample_wire_authorization
    ):
        facilitator_app.state.settle_success = False
        facilitator_app.state.settle_error = "Verification failed"

        result = await service.submit_delegated_payment("cronos-testnet", sample_wire_authorization)

        assert result.error == "Payment settlement failed"

    async def test_unknown_network_raises(self, service, sample_wire_authorization):
        with pytest.raises(UnsupportedNetworkError):
            await service.submit_delegated_payment("base", sample_wire_authorization)


@pytest.mark.asyncio
class TestVerifyDirectPayment:
    async def test_valid(self, service, fake_reader, merchant):
        fake_reader.receipts[TX] = {"status": 1, "blockNumber": 10}
        fake_reader.transactions[TX] = {"to": merchant, "value": 10**18}
        fake_reader.block_number = 20

        result = await service.verify_direct_payment("cronos-testnet", TX, merchant, "1")

        body = result.model_dump(by_alias=True, exclude_none=True)
        assert body["valid"] is True
        assert body["txHash"] == TX
        assert body["explorerUrl"] == f"https://testnet.cronoscan.com/tx/{TX}"
        assert body["receipt"] == {"status": 1, "blockNumber": 10}

    async def test_not_found(self, service, merchant):
        result = await service.verify_direct_payment("cronos-testnet", TX, merchant, "1")

        assert result.valid is False
        assert result.error == "Transaction not found"
        assert result.tx_hash == TX


@pytest.mark.asyncio
class TestFacilitatorInfo:
    async def test_health(self, service):
        health = await service.facilitator_health()
        assert health.healthy is True
        assert health.status == "healthy"

    async def test_unhealthy(self, service, facilitator_app):
        facilitator_app.state.health_status = "unhealthy"
        health = await service.facilitator_health()
        assert health.healthy is False

    async def test_supported_networks(self, service):
        supported = await service.supported_networks_and_assets()
        assert {n.network for n in supported.networks} == {"cronos-mainnet", "cronos-testnet"}
