"""
WebSocket bridge onto the in-process change feed.

    /api/realtime/ws?token=<access token>&table=orders&filter=status=eq.pending

Each connection holds exactly one subscription, released when the socket
closes. Change events are published from worker threads, so they are handed
to the connection's event loop through call_soon_threadsafe.
"""
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from typing import Optional
import asyncio
import logging
from models.profile import UserRole
from services.change_feed import ChangeEvent, ChangeFeed, RowFilter, get_change_feed
from utils.auth import extract_token, load_active_profile, verify_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/realtime", tags=["Realtime"])

SUBSCRIBABLE_TABLES = {"orders", "profiles", "system_settings"}

def authorize_subscription(role: UserRole, user_id: int, table: str, row_filter: RowFilter) -> bool:
    """
    Which feeds a role may follow:
    - Admin: any table, any filter
    - Driver: the pending pool, their own orders, their own profile
    - Client: their own orders
    Everyone may follow system_settings.
    """
    if table not in SUBSCRIBABLE_TABLES:
        return False
    if role == UserRole.ADMIN or table == "system_settings":
        return True

    own = frozenset({str(user_id)})
    clauses = row_filter.clauses

    if role == UserRole.DRIVER:
        if table == "orders":
            return clauses in ({"status": frozenset({"pending"})}, {"assigned_driver_id": own})
        if table == "profiles":
            return clauses == {"id": own}
        return False

    if role == UserRole.CLIENT:
        return table == "orders" and clauses == {"client_id": own}

    return False

@router.websocket("/ws")
async def realtime_websocket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    table: str = Query(...),
    filter: Optional[str] = Query(None),
    feed: ChangeFeed = Depends(get_change_feed)
):
    token = token or extract_token(websocket)
    payload = verify_token(token)
    if not payload:
        await websocket.close(code=1008, reason="Invalid authentication token")
        return

    # Short session, closed before accept: an open socket holds no pooled connection
    session_factory = getattr(websocket.app.state, "session_factory", None)
    try:
        user = await run_in_threadpool(load_active_profile, session_factory, payload["user_id"])
    except SQLAlchemyError as e:
        logger.error(f"Realtime could not load user {payload['user_id']}: {e}")
        user = None
    if user is None:
        await websocket.close(code=1008, reason="Unknown or inactive user")
        return

    try:
        row_filter = RowFilter.parse(filter)
    except ValueError as e:
        await websocket.close(code=1008, reason=str(e))
        return

    if not authorize_subscription(user.role, user.id, table, row_filter):
        logger.warning(f"User {user.id} ({user.role.value}) denied subscription to {table} {filter}")
        await websocket.close(code=1008, reason="Subscription not allowed")
        return

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(event: ChangeEvent):
        loop.call_soon_threadsafe(queue.put_nowait, event.to_message())

    subscription = feed.subscribe(table, row_filter, forward)
    logger.info(f"User {user.id} subscribed to {table} {filter or '*'}")

    async def send_events():
        while True:
            await websocket.send_json(await queue.get())

    async def receive_pings():
        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_json({"type": "pong"})

    tasks = []
    try:
        await websocket.send_json({"type": "subscribed", "table": table, "filter": filter})
        tasks = [asyncio.ensure_future(send_events()), asyncio.ensure_future(receive_pings())]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Realtime socket error for user {user.id}: {error}")
    finally:
        for task in tasks:
            task.cancel()
        subscription.unsubscribe()
        logger.info(f"User {user.id} unsubscribed from {table}")
