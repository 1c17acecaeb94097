"""
Marketplace configuration — loads env vars, validates, fails fast.

Values are read once at import. Each entry point calls require_sync_config()
or require_api_config() so a missing var for the mode being started exits
with a clear FATAL line instead of failing deep inside a request.
"""

import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load .env from project root
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

_WARNINGS: list = []  # collected during load, printed at summary


def _fatal(msg: str):
    print(f"FATAL: {msg}", file=sys.stderr)
    print("  Copy .env.example to .env and fill in the values.", file=sys.stderr)
    sys.exit(1)


def _optional(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _validate_address(addr: str, label: str) -> str:
    """Validate an EVM address: 0x-prefixed, 42 chars, valid hex."""
    if not addr.startswith("0x") or len(addr) != 42:
        _fatal(f"{label} is not a valid address: {addr}")
    try:
        int(addr, 16)
    except ValueError:
        _fatal(f"{label} contains invalid hex: {addr}")
    return addr


def _validate_url(url: str, label: str) -> str:
    """Validate a URL starts with http:// or https://."""
    if not url.startswith(("http://", "https://")):
        _fatal(f"{label} must start with http:// or https://: {url}")
    return url


def _int_range(name: str, raw: str, low: int, high: int) -> int:
    """Parse an int and clamp to [low, high] with a warning."""
    try:
        val = int(raw)
    except ValueError:
        _fatal(f"{name} must be an integer, got: {raw}")
    if val < low or val > high:
        clamped = max(low, min(val, high))
        _WARNINGS.append(f"{name}={val} out of range [{low},{high}], clamped to {clamped}")
        return clamped
    return val


# === ApeChain ===
APECHAIN_ID: int = 33139
APECHAIN_ID_HEX: str = hex(APECHAIN_ID)  # "0x8173", used by wallet chain-add prompts

APECHAIN_RPC: str = _optional("APECHAIN_RPC")
if APECHAIN_RPC:
    _validate_url(APECHAIN_RPC, "APECHAIN_RPC")

# Fixed public fallbacks, tried in order after APECHAIN_RPC
APECHAIN_RPC_FALLBACKS = (
    "https://rpc.apechain.com/http",
    "https://apechain.drpc.org",
    "https://33139.rpc.thirdweb.com",
)

RPC_CANDIDATES: List[Optional[str]] = [APECHAIN_RPC or None, *APECHAIN_RPC_FALLBACKS]

# === Contracts ===
NFT_CONTRACT_ADDRESS: str = _optional("NFT_CONTRACT_ADDRESS")
if NFT_CONTRACT_ADDRESS:
    _validate_address(NFT_CONTRACT_ADDRESS, "NFT_CONTRACT_ADDRESS")

SEAPORT_CONTRACT_ADDRESS: str = _optional("SEAPORT_CONTRACT_ADDRESS")
if SEAPORT_CONTRACT_ADDRESS:
    _validate_address(SEAPORT_CONTRACT_ADDRESS, "SEAPORT_CONTRACT_ADDRESS")

# === Sync job ===
BACKEND_URL: str = _optional("BACKEND_URL").rstrip("/")
if BACKEND_URL:
    _validate_url(BACKEND_URL, "BACKEND_URL")

FROM_BLOCK: int = _int_range("FROM_BLOCK", _optional("FROM_BLOCK", "0"), 0, 2**63 - 1)
CHUNK_SIZE: int = _int_range("CHUNK_SIZE", _optional("CHUNK_SIZE", "5000"), 1, 100_000)

# === Supabase (API only) ===
SUPABASE_URL: str = _optional("SUPABASE_URL")
if SUPABASE_URL:
    _validate_url(SUPABASE_URL, "SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY: str = _optional("SUPABASE_SERVICE_ROLE_KEY")

# === API ===
PORT: int = _int_range("PORT", _optional("PORT", "3000"), 1, 65535)

if not APECHAIN_RPC:
    _WARNINGS.append("APECHAIN_RPC not set — using public fallbacks only")


def require_sync_config() -> None:
    """Exit unless everything the sync job needs is set."""
    for name, val in (
        ("BACKEND_URL", BACKEND_URL),
        ("NFT_CONTRACT_ADDRESS", NFT_CONTRACT_ADDRESS),
        ("SEAPORT_CONTRACT_ADDRESS", SEAPORT_CONTRACT_ADDRESS),
    ):
        if not val:
            _fatal(f"missing required env var: {name}")


def require_api_config() -> None:
    """Exit unless everything the Marketplace API needs is set."""
    for name, val in (
        ("SUPABASE_URL", SUPABASE_URL),
        ("SUPABASE_SERVICE_ROLE_KEY", SUPABASE_SERVICE_ROLE_KEY),
        ("NFT_CONTRACT_ADDRESS", NFT_CONTRACT_ADDRESS),
        ("SEAPORT_CONTRACT_ADDRESS", SEAPORT_CONTRACT_ADDRESS),
    ):
        if not val:
            _fatal(f"missing required env var: {name}")


def print_config_summary() -> None:
    """Print a non-sensitive config summary for startup verification."""
    print("--- Marketplace Config ---")
    print(f"  Chain:          ApeChain ({APECHAIN_ID} / {APECHAIN_ID_HEX})")
    print(f"  Primary RPC:    {(APECHAIN_RPC or '(unset)')[:40]}")
    print(f"  RPC candidates: {len([u for u in RPC_CANDIDATES if u])}")
    print(f"  NFT contract:   {NFT_CONTRACT_ADDRESS or '(unset)'}")
    print(f"  Seaport:        {SEAPORT_CONTRACT_ADDRESS or '(unset)'}")
    print(f"  Backend:        {(BACKEND_URL or '(unset)')[:40]}")
    print(f"  From block:     {FROM_BLOCK}")
    print(f"  Chunk size:     {CHUNK_SIZE}")
    print(f"  Supabase:       {(SUPABASE_URL or '(unset)')[:40]}")
    # Show only first/last chars of the service key
    if SUPABASE_SERVICE_ROLE_KEY:
        _key_display = SUPABASE_SERVICE_ROLE_KEY[:6] + "..." + SUPABASE_SERVICE_ROLE_KEY[-4:]
    else:
        _key_display = "(unset)"
    print(f"  Service key:    {_key_display}")
    print(f"  API port:       {PORT}")
    if _WARNINGS:
        print(f"  ⚠️  {len(_WARNINGS)} config warning(s):")
        for w in _WARNINGS:
            print(f"    - {w}")
    print("-" * 26)
