"""
Marketplace API — the HTTP surface both the browser frontend and the sync
job write orders through.

Routes:
  GET  /api/status   liveness
  GET  /api/config   public chain/contract config for the frontend
  POST /api/order    idempotent create-or-update keyed by orderHash
  GET  /api/orders   active listings, newest first, paginated
  POST /api/buy      buy callback after a successful on-chain fulfillment
"""

from datetime import datetime, timezone

from aiohttp import web

from marketplace.orders.payload import listing_price
from marketplace.orders.records import SubmissionError, normalize_address, parse_submission, submission_to_row

DEFAULT_PAGE_LIMIT = 12
MAX_PAGE_LIMIT = 500

# Columns returned by POST /api/order
_ORDER_SUMMARY_FIELDS = (
    "id", "orderHash", "tokenId", "price", "seller", "buyerAddress",
    "status", "onChain", "onChainBlock",
)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


def _query_int(raw, default: int) -> int:
    if raw is None or raw == "":
        return default
    return int(raw)


class MarketplaceAPI:
    """aiohttp handlers bound to an order store."""

    def __init__(self, db, nft_contract: str, marketplace_contract: str,
                 chain_id: int, chain_id_hex: str):
        self.db = db
        self.nft_contract = nft_contract
        self.marketplace_contract = marketplace_contract
        self.chain_id = chain_id
        self.chain_id_hex = chain_id_hex

    async def status_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True, "time": datetime.now(timezone.utc).isoformat()})

    async def config_handler(self, request: web.Request) -> web.Response:
        return web.json_response({
            "nftContract": self.nft_contract,
            "marketplaceContract": self.marketplace_contract,
            "chainId": self.chain_id,
            "chainIdHex": self.chain_id_hex,
        })

    async def create_order_handler(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            return _error("Invalid JSON body", 400)

        try:
            submission = parse_submission(body)
        except SubmissionError as e:
            return _error(str(e), 400)

        row = submission_to_row(submission, self.nft_contract, self.marketplace_contract)
        try:
            stored = await self.db.upsert_order(row)
        except Exception as e:
            print(f"[API] POST /api/order error ({row['orderHash'][:18]}...): {e}")
            return _error("Server error", 500)

        print(f"[API] Order {stored.get('status')} upserted: {row['orderHash'][:18]}...")
        summary = {k: stored.get(k) for k in _ORDER_SUMMARY_FIELDS}
        return web.json_response({"success": True, "order": summary})

    async def list_orders_handler(self, request: web.Request) -> web.Response:
        try:
            page = _query_int(request.query.get("page"), 1)
            limit = _query_int(request.query.get("limit"), DEFAULT_PAGE_LIMIT)
        except ValueError:
            return _error("page and limit must be integers", 400)
        page = max(page, 1)
        limit = max(1, min(limit, MAX_PAGE_LIMIT))

        try:
            orders = await self.db.list_active_orders(page, limit)
        except Exception as e:
            print(f"[API] GET /api/orders error: {e}")
            return _error("Server error", 500)

        for o in orders:
            if o.get("price") is None:
                derived = listing_price(o.get("signedOrderPayload"))
                o["displayPrice"] = str(derived) if derived is not None else None
            else:
                o["displayPrice"] = str(o["price"])

        return web.json_response({"success": True, "page": page, "limit": limit, "orders": orders})

    async def buy_handler(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except ValueError:
            return _error("Invalid JSON body", 400)
        if not isinstance(body, dict):
            return _error("Body must be a JSON object", 400)

        order_hash = body.get("orderHash")
        buyer = body.get("buyerAddress")
        if not order_hash or not buyer:
            return _error("Missing orderHash or buyerAddress", 400)
        try:
            buyer = normalize_address(buyer, "buyerAddress")
        except SubmissionError as e:
            return _error(str(e), 400)

        try:
            order = await self.db.mark_sold(str(order_hash), buyer)
        except Exception as e:
            print(f"[API] POST /api/buy error: {e}")
            return _error("Server error", 500)

        if order is None:
            return _error("Order not found", 404)

        print(f"[API] Order sold: {str(order_hash)[:18]}... → {buyer}")
        return web.json_response({"success": True, "order": order})


def create_app(api: MarketplaceAPI) -> web.Application:
    app = web.Application()
    app.router.add_get("/api/status", api.status_handler)
    app.router.add_get("/api/config", api.config_handler)
    app.router.add_post("/api/order", api.create_order_handler)
    app.router.add_get("/api/orders", api.list_orders_handler)
    app.router.add_post("/api/buy", api.buy_handler)
    return app
