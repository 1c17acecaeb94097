"""
Order store gateway — posts normalized order events to the Marketplace API.

submit() never raises: a rejected submission, an unreadable response and a
network failure all come back as False, so one bad event cannot stop a scan.
"""

import asyncio
from typing import Optional

import aiohttp

from marketplace.sync.events import OrderEvent


class OrderGateway:
    """Async client for POST /api/order."""

    def __init__(
        self,
        backend_url: str,
        nft_contract: str,
        marketplace_contract: str,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.endpoint = f"{backend_url.rstrip('/')}/api/order"
        self.nft_contract = nft_contract
        self.marketplace_contract = marketplace_contract
        self._session = session
        self._owns_session = session is None
        self._accepted = 0
        self._rejected = 0
        self._errors = 0

    async def _ensure_session(self):
        # Transport default timeouts apply
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def submit(self, event: OrderEvent) -> bool:
        """Upsert one event by orderHash. True only if the API confirmed it."""
        payload = event.to_payload(self.nft_contract, self.marketplace_contract)
        await self._ensure_session()

        try:
            async with self._session.post(self.endpoint, json=payload) as resp:
                if resp.status < 200 or resp.status >= 300:
                    body = await resp.text()
                    print(f"[GATEWAY] ❌ Rejected {event.order_hash[:18]}...: "
                          f"HTTP {resp.status} {body[:200]}")
                    self._rejected += 1
                    return False

                data = await resp.json(content_type=None)

        except asyncio.TimeoutError:
            print(f"[GATEWAY] ❌ Timeout posting {event.order_hash[:18]}...")
            self._errors += 1
            return False
        except Exception as e:
            print(f"[GATEWAY] ❌ Backend error for {event.order_hash[:18]}...: {e}")
            self._errors += 1
            return False

        if not isinstance(data, dict) or data.get("success") is not True:
            print(f"[GATEWAY] ❌ Rejected {event.order_hash[:18]}...: {str(data)[:200]}")
            self._rejected += 1
            return False

        self._accepted += 1
        return True

    def metrics(self) -> dict:
        return {
            "accepted": self._accepted,
            "rejected": self._rejected,
            "errors": self._errors,
        }
