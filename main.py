"""
ApeChain Marketplace — entry point.

Usage:
    python3 main.py              # On-chain Seaport sync (one batch sweep, then exit)
    python3 main.py --serve      # Marketplace API
    python3 main.py --smoke      # Smoke test only (connect + exit)

Exit status: 0 when the sync completes (skipped chunks included), 1 when no
RPC endpoint answers, config is missing, or anything else escapes.
"""

import argparse
import asyncio
import sys

from marketplace.config import (
    APECHAIN_ID,
    APECHAIN_ID_HEX,
    BACKEND_URL,
    CHUNK_SIZE,
    FROM_BLOCK,
    NFT_CONTRACT_ADDRESS,
    PORT,
    RPC_CANDIDATES,
    SEAPORT_CONTRACT_ADDRESS,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
    print_config_summary,
    require_api_config,
    require_sync_config,
)
from marketplace.rpc.selector import NoHealthyEndpoint, RPCSelector
from marketplace.sync.driver import SyncJob
from marketplace.sync.gateway import OrderGateway


async def smoke_test():
    """Smoke test: probe RPC + Supabase, print status, exit."""
    print("=" * 50)
    print("  Marketplace — Smoke Test")
    print("=" * 50)
    print()
    print_config_summary()
    print()

    # RPC
    selector = RPCSelector(RPC_CANDIDATES)
    try:
        session = await selector.select()
    except NoHealthyEndpoint as e:
        print(f"[RPC] ❌ {e}", file=sys.stderr)
        sys.exit(1)
    try:
        chain_id = await session.w3.eth.chain_id
    finally:
        await session.close()
    print(f"[RPC] ✅ ApeChain chain_id={chain_id} block={session.probe_block}")
    if chain_id != APECHAIN_ID:
        print(f"[RPC] ⚠️  Expected chain_id {APECHAIN_ID}, got {chain_id}", file=sys.stderr)
        sys.exit(1)

    # Supabase (only when configured)
    print()
    if SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY:
        from marketplace.db.client import health_check, init_supabase

        print("[DB] Connecting to Supabase...")
        sb = init_supabase(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
        ok = await health_check(sb)
        print(f"[DB] {'✅ supabase ok' if ok else '❌ Supabase query failed'}")
    else:
        print("[DB] ⚠️  Supabase not configured — skipped")

    print()
    print("=" * 50)
    print("  ✅ SMOKE TEST PASSED")
    print(f"  Chain: ApeChain ({chain_id}) | Block: {session.probe_block}")
    print(f"  RPC:   {session.url}")
    print("=" * 50)


async def run_sync() -> int:
    """One on-chain sweep of Seaport events into the order store."""
    require_sync_config()
    print("=" * 50)
    print("  On-chain Seaport Sync — Starting")
    print("=" * 50)
    print()
    print_config_summary()
    print()

    selector = RPCSelector(RPC_CANDIDATES)
    gateway = OrderGateway(BACKEND_URL, NFT_CONTRACT_ADDRESS, SEAPORT_CONTRACT_ADDRESS)
    job = SyncJob(
        selector,
        gateway,
        marketplace_contract=SEAPORT_CONTRACT_ADDRESS,
        from_block=FROM_BLOCK,
        chunk_size=CHUNK_SIZE,
    )

    try:
        report = await job.run()
    except NoHealthyEndpoint as e:
        print(f"[SYNC] 💀 {e}", file=sys.stderr)
        return 1
    finally:
        await gateway.close()

    print()
    print("=" * 50)
    print("  🎉 On-chain Seaport Sync — Complete")
    print("=" * 50)
    print(report.summary())
    print(f"Gateway:      {gateway.metrics()}")
    return 0


def run_api():
    """Serve the Marketplace API until interrupted."""
    require_api_config()
    from aiohttp import web

    from marketplace.api.server import MarketplaceAPI, create_app
    from marketplace.db.client import Database, init_supabase

    print_config_summary()
    print()
    print("[INIT] Connecting to Supabase...")
    db = Database(init_supabase(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY))
    print("[INIT] ✅ DB client ready")

    api = MarketplaceAPI(
        db,
        nft_contract=NFT_CONTRACT_ADDRESS,
        marketplace_contract=SEAPORT_CONTRACT_ADDRESS,
        chain_id=APECHAIN_ID,
        chain_id_hex=APECHAIN_ID_HEX,
    )
    print(f"[API] 🚀 Listening on port {PORT}")
    web.run_app(create_app(api), port=PORT, print=None)


def main():
    parser = argparse.ArgumentParser(description="ApeChain Marketplace")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--serve", action="store_true", help="Run the Marketplace API")
    mode.add_argument("--smoke", action="store_true", help="Smoke test only (connect + exit)")
    args = parser.parse_args()

    try:
        if args.smoke:
            asyncio.run(smoke_test())
        elif args.serve:
            run_api()
        else:
            sys.exit(asyncio.run(run_sync()))
    except KeyboardInterrupt:
        print("\nStopped.")
        sys.exit(1)
    except Exception as e:
        print(f"💀 Fatal: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
