# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Tests for the facilitator client: verify/settle sequencing, business outcomes
and transport failure handling.
"""
import asyncio

import httpx
import pytest

from cronos_x402.authorization import SignedTransferAuthorization
from cronos_x402.errors import MalformedResponseError, SettlementTimeoutError, TransportError
from cronos_x402.networks import CRONOS_TESTNET
from cronos_x402.settlement import (
    SettlementClient,
    SettlementClientFactory,
    SettlementConfig,
    VERIFICATION_FAILED,
)

BASE_URL = "https://facilitator.test"


def _client(handler, timeout_s: float = 5) -> SettlementClient:
    return SettlementClient(
        SettlementConfig(base_url=BASE_URL, timeout_s=timeout_s),
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def signed_auth(sample_wire_authorization) -> SignedTransferAuthorization:
    return SignedTransferAuthorization.model_validate(sample_wire_authorization)


def test_config_from_env(test_env):
    cfg = SettlementConfig.from_env()
    assert cfg.base_url == "https://facilitator.test"
    assert cfg.timeout_s == 5.0


def test_config_defaults_to_public_facilitator(monkeypatch):
    monkeypatch.delenv("CRONOS_FACILITATOR_URL", raising=False)
    assert SettlementConfig.from_env().base_url == "https://facilitator.cronoslabs.org"


@pytest.mark.asyncio
class TestAgainstMockFacilitator:
    async def test_health(self, settlement_client):
        health = await settlement_client.health()
        assert health.status == "healthy"
        assert health.timestamp == 1700000000000

    async def test_supported_networks(self, settlement_client):
        supported = await settlement_client.supported_networks()
        by_name = {n.network: n for n in supported.networks}
        assert by_name["cronos-testnet"].chain_id == 338
        assert by_name["cronos-mainnet"].tokens[0].symbol == "USDC.e"

    async def test_verify_and_settle_success(self, settlement_client, facilitator_app, signed_auth):
        result = await settlement_client.verify_and_settle(
            CRONOS_TESTNET, CRONOS_TESTNET.stable_asset.address, signed_auth
        )

        assert result.success is True
        assert result.tx_hash == "0x" + "f" * 64
        kinds = [c[0] for c in facilitator_app.state.calls]
        assert kinds == ["verify", "settle"]

        verify_body = facilitator_app.state.calls[0][1]
        assert verify_body["network"] == "cronos-testnet"
        assert verify_body["token"] == CRONOS_TESTNET.stable_asset.address
        assert verify_body["value"] == "10000"
        assert verify_body["from"] == signed_auth.from_address
        assert "verificationId" not in verify_body

        settle_body = facilitator_app.state.calls[1][1]
        assert settle_body["verificationId"] == f"ver_{signed_auth.nonce[2:10]}"

    async def test_rejected_verification_never_settles(self, settlement_client, facilitator_app, signed_auth):
        facilitator_app.state.verify_valid = False

        result = await settlement_client.verify_and_settle(
            "cronos-testnet", CRONOS_TESTNET.stable_asset.address, signed_auth
        )

        assert result.success is False
        assert result.error == VERIFICATION_FAILED
        assert result.reason == "Insufficient balance"
        assert result.verification_failed
        assert [c[0] for c in facilitator_app.state.calls] == ["verify"]

    async def test_settlement_failure_is_a_result(self, settlement_client, facilitator_app, signed_auth):
        facilitator_app.state.settle_success = False

        result = await settlement_client.verify_and_settle(
            "cronos-testnet", CRONOS_TESTNET.stable_asset.address, signed_auth
        )

        assert result.success is False
        assert not result.verification_failed
        assert result.reason == "Transaction reverted"

    async def test_settle_phase_error_text_is_not_a_rejection(self, settlement_client, facilitator_app, signed_auth):
        facilitator_app.state.settle_success = False
        facilitator_app.state.settle_error = VERIFICATION_FAILED

        result = await settlement_client.verify_and_settle(
            "cronos-testnet", CRONOS_TESTNET.stable_asset.address, signed_auth
        )

        assert result.error == VERIFICATION_FAILED
        assert not result.verification_failed
        assert [c[0] for c in facilitator_app.state.calls] == ["verify", "settle"]

    async def test_reused_nonce_is_rejected_on_second_submission(self, settlement_client, signed_auth):
        token = CRONOS_TESTNET.stable_asset.address
        first = await settlement_client.verify_and_settle("cronos-testnet", token, signed_auth)
        second = await settlement_client.verify_and_settle("cronos-testnet", token, signed_auth)

        assert first.success is True
        assert second.verification_failed
        assert second.reason == "Nonce already used"


@pytest.mark.asyncio
class TestTransportFailures:
    async def test_server_error_raises_transport_error(self, signed_auth):
        client = _client(lambda request: httpx.Response(503, text="maintenance"))

        with pytest.raises(TransportError) as exc:
            await client.verify("cronos-testnet", "0xtoken", signed_auth)

        assert exc.value.status_code == 503
        assert exc.value.body == "maintenance"
        assert exc.value.url == f"{BASE_URL}/v2/x402/verify"
        await client.aclose()

    async def test_server_error_during_verify_never_settles(self, signed_auth):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(500, text="boom")

        client = _client(handler)
        with pytest.raises(TransportError):
            await client.verify_and_settle("cronos-testnet", "0xtoken", signed_auth)
        assert seen == ["/v2/x402/verify"]
        await client.aclose()

    async def test_connection_error_raises_transport_error(self, signed_auth):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(TransportError) as exc:
            await client.health()
        assert not isinstance(exc.value, SettlementTimeoutError)
        await client.aclose()

    async def test_httpx_timeout_raises_settlement_timeout(self, signed_auth):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        client = _client(handler)
        with pytest.raises(SettlementTimeoutError):
            await client.settle("cronos-testnet", "0xtoken", signed_auth, verification_id="ver_1")
        await client.aclose()

    async def test_slow_response_times_out(self, signed_auth):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={"status": "healthy"})

        client = _client(handler, timeout_s=0.05)
        with pytest.raises(SettlementTimeoutError):
            await client.health()
        await client.aclose()

    async def test_non_json_response_is_malformed(self):
        client = _client(lambda request: httpx.Response(200, text="<html>ok</html>"))
        with pytest.raises(MalformedResponseError):
            await client.health()
        await client.aclose()

    async def test_unexpected_shape_is_malformed(self):
        client = _client(lambda request: httpx.Response(200, json={"status": "sleeping"}))
        with pytest.raises(MalformedResponseError):
            await client.health()
        await client.aclose()

    async def test_json_array_is_malformed(self):
        client = _client(lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(MalformedResponseError):
            await client.supported_networks()
        await client.aclose()


@pytest.mark.asyncio
class TestSettlementClientFactory:
    async def test_clients_are_shared_per_config(self):
        factory = SettlementClientFactory(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        cfg = SettlementConfig(base_url=BASE_URL)

        first = factory.get(cfg)
        assert factory.get(SettlementConfig(base_url=BASE_URL)) is first
        assert factory.get(SettlementConfig(base_url="https://other.test")) is not first

        await factory.aclose()
        assert first.http.is_closed

    async def test_empty_base_url_rejected(self):
        with pytest.raises(ValueError):
            SettlementClient(SettlementConfig(base_url=""))
