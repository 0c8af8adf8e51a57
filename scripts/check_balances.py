# Copyright 2025 t54 labs
# SPDX-License-Identifier: Apache-2.0
"""
Check payer and merchant wallet balances on Cronos (native CRO + USDC.e)
"""

import asyncio
import os
import sys
from datetime import datetime

from dotenv import load_dotenv

# Load environment variables
repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(repo_root, "packages", "cronos-x402", "src"))
load_dotenv()

from cronos_x402.authorization import to_base_units  # noqa: E402
from cronos_x402.chain import Web3ChainReader, get_balances_summary  # noqa: E402
from cronos_x402.networks import FAUCETS, get_network  # noqa: E402

# Readiness thresholds (human-readable units)
MIN_NATIVE = "0.1"
MIN_STABLE = "1"


def _print_balances(label: str, address: str, summary: dict) -> None:
    print(f"\n{label}: {address}")
    native, stable = summary["native"], summary["stable"]
    if native is not None:
        print(f"   {native.symbol}: {native.balance_formatted}")
    else:
        print("   native balance unavailable")
    if stable is not None:
        print(f"   {stable.token_symbol}: {stable.balance_formatted}")
    else:
        print("   stable balance unavailable")


async def check_balances():
    """Check payer and merchant balances"""
    net = get_network(os.getenv("CRONOS_DEFAULT_NETWORK", "cronos-testnet"))
    rpc_env = "CRONOS_MAINNET_RPC_URL" if net.chain_id == 25 else "CRONOS_TESTNET_RPC_URL"
    reader = Web3ChainReader(os.getenv(rpc_env, net.rpc_url))

    print(f"\n{net.display_name} wallet balance check (chain id {net.chain_id})")
    print(f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    payer_address = os.getenv("PAYER_ADDRESS")
    merchant_address = os.getenv("MERCHANT_ADDRESS")
    if not payer_address or not merchant_address:
        print("\nWallet configuration not found")
        print("Set PAYER_ADDRESS and MERCHANT_ADDRESS in .env")
        return

    payer, merchant = await asyncio.gather(
        get_balances_summary(reader, payer_address, net),
        get_balances_summary(reader, merchant_address, net),
    )
    print("\n" + "=" * 60)
    _print_balances("Payer wallet", payer_address, payer)
    _print_balances("Merchant wallet", merchant_address, merchant)

    print("\n" + "=" * 60)
    print("Block Explorer Links:")
    print(f"\nPayer: {net.address_url(payer_address)}")
    print(f"Merchant: {net.address_url(merchant_address)}")
    print(f"{net.stable_asset.symbol}: {net.token_url(net.stable_asset.address)}")

    if net.chain_id != 25:
        print("\nGet test tokens:")
        print(f"  {net.native_asset.symbol}: {FAUCETS['native']}")
        print(f"  {net.stable_asset.symbol}: {FAUCETS['stable']}")

    print("\n" + "=" * 60)
    native, stable = payer["native"], payer["stable"]
    ready_native = native is not None and native.balance_wei >= to_base_units(MIN_NATIVE, native.decimals)
    ready_stable = stable is not None and stable.balance >= to_base_units(MIN_STABLE, stable.decimals)
    print(("OK" if ready_native else "LOW") + f" payer {net.native_asset.symbol} (need {MIN_NATIVE} for direct payments)")
    print(("OK" if ready_stable else "LOW") + f" payer {net.stable_asset.symbol} (need {MIN_STABLE} for gasless payments)")


if __name__ == "__main__":
    asyncio.run(check_balances())
