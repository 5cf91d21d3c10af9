"""FastAPI backend for the live-auction dashboard.

Serves (read-only):
- REST endpoints for room state, auction history and analytics
- WebSocket for real-time room state
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .. import __version__
from ..config import Config, load_config
from ..errors import ConnectivityError, LiveAuctionError, NotFoundError, ValidationError
from ..models.types import (
    AuctionHistoryRecord,
    AuctionState,
    current_ts_ms,
    time_left_seconds,
)
from ..room import Room
from ..services.analytics import analyze_room
from ..services.bid_ledger import as_price
from ..services.presence import count_viewers
from ..storage.base import RealtimeStore, child_values
from ..storage.inventory import load_inventory
from ..storage.rest_store import RestStore

logger = logging.getLogger(__name__)


# ============================================================================
# Models
# ============================================================================

class RoomState(BaseModel):
    room_id: str
    timestamp: int
    is_active: bool
    end_time: int
    time_left: int
    item_name: Optional[str] = None
    current_price: int
    viewer_count: int


class Bidder(BaseModel):
    user: str
    amount: int


class HistoryEntry(BaseModel):
    item_name: str
    final_price: int
    winner: str
    top_bidders: List[Bidder]
    timestamp: int


class TopBidder(BaseModel):
    name: str
    total: int


class UnsoldItem(BaseModel):
    name: str
    starting_price: int


class Analytics(BaseModel):
    room_id: str
    start_time: int
    end_time: int
    window_source: str
    real_user_count: int
    total_bids: int
    items_showcased: int
    items_sold: int
    revenue: int
    conversion_pct: int
    avg_multiplier: float
    highest_multiplier: float
    highest_multiplier_item: str
    avg_viewers: int
    top_bidders: List[TopBidder]
    unsold_items: List[UnsoldItem]
    bucket_labels: List[str]
    bid_counts: List[int]
    join_counts: List[int]


# ============================================================================
# WebSocket Manager
# ============================================================================

class ConnectionManager:
    """Manage WebSocket connections per room."""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, room_id: str, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.setdefault(room_id, []).append(websocket)
        logger.info(f"[{room_id}] Client connected. Total: {self.count(room_id)}")

    def disconnect(self, room_id: str, websocket: WebSocket):
        connections = self.active_connections.get(room_id, [])
        if websocket in connections:
            connections.remove(websocket)
        logger.info(f"[{room_id}] Client disconnected. Total: {self.count(room_id)}")

    def count(self, room_id: str) -> int:
        return len(self.active_connections.get(room_id, []))


# ============================================================================
# Store access
# ============================================================================

async def read_room_state(store: RealtimeStore, room: Room, now_ms: Optional[int] = None) -> RoomState:
    """Snapshot the live state of a room (three independent reads)."""
    now_ms = current_ts_ms() if now_ms is None else now_ms
    auction, price, viewers = await asyncio.gather(
        store.read(room.auction_path),
        store.read(room.price_path),
        store.read(room.viewers_path),
    )
    state = AuctionState.from_dict(auction)
    end = state.effective_end_time

    return RoomState(
        room_id=room.room_id,
        timestamp=now_ms,
        is_active=state.is_active,
        end_time=end or 0,
        time_left=time_left_seconds(end, now_ms) if end else 0,
        item_name=state.item_name,
        current_price=as_price(price),
        viewer_count=count_viewers(viewers),
    )


def _room(room_id: str) -> Room:
    try:
        return Room(room_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _http_error(e: LiveAuctionError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConnectivityError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# ============================================================================
# App
# ============================================================================

def create_app(
    store: Optional[RealtimeStore] = None,
    config: Optional[Config] = None,
    inventory: Optional[Dict[str, int]] = None,
) -> FastAPI:
    """Build the dashboard app.

    Args:
        store: Store to read from; when None a RestStore is opened from
            the database config for the app's lifetime
        config: Configuration (defaults to load_config())
        inventory: Starting prices; defaults to the configured CSV
    """
    config = config or load_config()
    inventory = inventory if inventory is not None else load_inventory(config.analytics.inventory_path)
    manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if store is not None:
            app.state.store = store
            yield
            return

        if not config.database.url:
            raise ConnectivityError("No database url configured (database.url)")
        rest_store = RestStore(
            config.database.url,
            auth_token=config.database_token,
            timeout_seconds=config.database.timeout_seconds,
        )
        await rest_store.start()
        app.state.store = rest_store
        try:
            yield
        finally:
            await rest_store.close()

    app = FastAPI(
        title="Live Auction Dashboard",
        description="Read-only view of live auction rooms",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store

    # CORS for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/rooms/{room_id}/state", response_model=RoomState)
    async def get_state(room_id: str, request: Request):
        """Get the live state of a room."""
        room = _room(room_id)
        try:
            return await read_room_state(request.app.state.store, room)
        except LiveAuctionError as e:
            raise _http_error(e) from e

    @app.get("/api/rooms/{room_id}/history")
    async def get_history(room_id: str, request: Request, limit: int = 50):
        """Get closed auction rounds, oldest first."""
        room = _room(room_id)
        try:
            node = await request.app.state.store.read(room.history_path)
        except LiveAuctionError as e:
            raise _http_error(e) from e

        records = [AuctionHistoryRecord.from_dict(v) for v in child_values(node) if isinstance(v, dict)]
        history = [
            HistoryEntry(
                item_name=r.item_name,
                final_price=r.final_price,
                winner=r.winner,
                top_bidders=[Bidder(user=b.user, amount=b.amount) for b in r.top_bidders],
                timestamp=r.timestamp,
            )
            for r in records[-limit:]
        ]
        return {"history": history}

    @app.get("/api/rooms/{room_id}/analytics", response_model=Analytics)
    async def get_analytics(
        room_id: str,
        request: Request,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ):
        """Run the analytics aggregator over a room."""
        _room(room_id)
        try:
            report = await analyze_room(
                request.app.state.store, room_id, inventory, start=start, end=end, config=config
            )
        except LiveAuctionError as e:
            raise _http_error(e) from e
        return report.to_dict()

    @app.websocket("/ws/rooms/{room_id}")
    async def websocket_endpoint(websocket: WebSocket, room_id: str):
        """Stream room state every push interval."""
        room = Room(room_id)
        await manager.connect(room_id, websocket)
        try:
            while True:
                state = await read_room_state(websocket.app.state.store, room)
                await websocket.send_json(state.model_dump())
                await asyncio.sleep(config.dashboard.push_interval_seconds)
        except WebSocketDisconnect:
            manager.disconnect(room_id, websocket)
        except Exception as e:
            logger.error(f"[{room_id}] WebSocket error: {e}")
            manager.disconnect(room_id, websocket)

    app.state.manager = manager
    return app


# ============================================================================
# Main
# ============================================================================

def run_dashboard(
    host: str = "127.0.0.1",
    port: int = 8080,
    store: Optional[RealtimeStore] = None,
    config: Optional[Config] = None,
):
    """Run the dashboard server."""
    import uvicorn
    uvicorn.run(create_app(store=store, config=config), host=host, port=port)
