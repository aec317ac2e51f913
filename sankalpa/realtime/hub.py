"""
sankalpa/realtime/hub.py
In-memory fan-out of committed account snapshots to WebSocket clients.

The first socket in an account room subscribes to the store's change feed;
the last one to leave unsubscribes. Store listeners may fire on worker
threads, so broadcasts are handed back to the event loop thread-safely.
"""

from typing import Callable, Dict, Optional, Set
import asyncio
import logging

from fastapi import WebSocket

from sankalpa.core.metrics import ws_active_connections
from sankalpa.models.account import Account
from sankalpa.store.base import AccountStore

logger = logging.getLogger(__name__)

Render = Callable[[Account], dict]


class AccountHub:
    """Room-per-account broadcast hub."""

    def __init__(self, store: AccountStore, render: Render, *, max_sockets_per_account: int = 5):
        self.store = store
        if max_sockets_per_account < 1:
            raise ValueError("max_sockets_per_account must be at least 1")
        self.render = render
        self.max_sockets_per_account = max_sockets_per_account
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._unsubscribers: Dict[str, Callable[[], None]] = {}
        self._global_count = 0
        self._broadcasts: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    async def register(self, account_id: str, websocket: WebSocket) -> bool:
        """Add a socket to the account room. Returns False when the room is full."""
        loop = asyncio.get_running_loop()
        async with self._lock:
            room = self._rooms.setdefault(account_id, set())
            if len(room) >= self.max_sockets_per_account:
                return False
            room.add(websocket)
            self._global_count += 1
            if account_id not in self._unsubscribers:
                self._unsubscribers[account_id] = self.store.subscribe(
                    account_id, self._listener(account_id, loop)
                )
            ws_active_connections.set(self._global_count)
            logger.debug(f"[HUB] Registered socket for account {account_id}. Total: {len(room)}")
            return True

    async def unregister(self, account_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            room = self._rooms.get(account_id)
            if room is None or websocket not in room:
                return
            room.discard(websocket)
            self._global_count = max(0, self._global_count - 1)
            if not room:
                del self._rooms[account_id]
                unsubscribe = self._unsubscribers.pop(account_id, None)
                if unsubscribe:
                    unsubscribe()
                logger.debug(f"[HUB] Cleaned up empty room for account {account_id}")
            ws_active_connections.set(self._global_count)

    def _listener(self, account_id: str, loop: asyncio.AbstractEventLoop) -> Callable[[Account], None]:
        def on_snapshot(snapshot: Account) -> None:
            message = {"type": "account.snapshot", "data": self.render(snapshot)}
            loop.call_soon_threadsafe(self._schedule_broadcast, loop, account_id, message)

        return on_snapshot

    def _schedule_broadcast(self, loop: asyncio.AbstractEventLoop, account_id: str, message: dict) -> None:
        task = loop.create_task(self.broadcast(account_id, message))
        self._broadcasts.add(task)
        task.add_done_callback(self._broadcast_done)

    def _broadcast_done(self, task: asyncio.Task) -> None:
        self._broadcasts.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"[HUB] Broadcast failed: {task.exception()!r}")

    async def broadcast(self, account_id: str, message: dict) -> None:
        """Send to every socket in the room, pruning the ones that fail."""
        async with self._lock:
            sockets = set(self._rooms.get(account_id, set()))
        if not sockets:
            return

        dead = []
        for ws in sockets:
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.debug(f"[HUB] Failed to send to socket: {e}")
                dead.append(ws)

        for ws in dead:
            await self.unregister(account_id, ws)

    async def room_size(self, account_id: Optional[str] = None) -> int:
        async with self._lock:
            if account_id is None:
                return self._global_count
            return len(self._rooms.get(account_id, set()))
