# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""Basic payer example: gasless USDC.e payment through the Cronos facilitator."""

import asyncio
import os

from dotenv import load_dotenv
from cronos_x402 import (
    DirectTransferVerifier,
    LocalAccountSigner,
    PayerContext,
    PaymentRequirement,
    PaymentRouter,
    SettlementClient,
    SettlementConfig,
    TransportError,
    get_network,
    setup_otel_from_env,
)

load_dotenv()


async def main():
    """Pay a merchant in the network's stable asset."""
    setup_otel_from_env()
    net = get_network(os.getenv("CRONOS_DEFAULT_NETWORK", "cronos-testnet"))
    signer = LocalAccountSigner.from_key(os.environ["PAYER_PRIVATE_KEY"])
    requirement = PaymentRequirement(
        network=net.network,
        max_amount_required=os.getenv("PAYMENT_AMOUNT", "0.01"),
        pay_to=os.environ["MERCHANT_ADDRESS"],
        asset=net.stable_asset.address,
        max_timeout_seconds=300,
        description="Example payment",
    )

    async with SettlementClient(SettlementConfig.from_env()) as settlement:
        router = PaymentRouter(settlement, DirectTransferVerifier())
        if not await router.check_health():
            print("Facilitator is unhealthy, try again later")
            return
        try:
            outcome = await router.pay(requirement, PayerContext(accounts=[signer.address], signer=signer))
        except TransportError as e:
            # settle may have landed; check the explorer before paying again
            print(f"\nFacilitator unreachable: {e}")
            raise

    if outcome.success:
        print("Payment successful!")
        print(f"   tx: {outcome.explorer_url}")
    else:
        print(f"\nPayment {outcome.status.value}: {outcome.error} {outcome.reason or ''}")
    print(f"   states: {' -> '.join(s.value for s in outcome.states)}")


if __name__ == "__main__":
    asyncio.run(main())
