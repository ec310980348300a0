# storefront/api/routers/notifications.py
import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from storefront.api.deps import actor_from_token
from storefront.domain.events import OrderStatusChanged
from storefront.services.token_service import InvalidToken
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["notifications"])

POLICY_VIOLATION = 1008


class WebSocketConnection:
    """
    Dispatcher connection backed by a websocket.
    send() can be called from any thread; the frame is queued on the socket's own loop.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop

    def send(self, event: OrderStatusChanged):
        if self.loop.is_closed():
            raise ConnectionError("websocket loop closed")
        payload = {"type": "order:status", **event.to_dict()}
        future = asyncio.run_coroutine_threadsafe(self.websocket.send_json(payload), self.loop)
        future.add_done_callback(lambda f: self._report(f, event))

    def _report(self, future, event: OrderStatusChanged):
        #wysylka idzie na petli socketu, blad widac dopiero tutaj
        if future.cancelled():
            logger.warning(f"Delivery of order {event.order_id} event to user {event.owner} was cancelled")
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Delivery of order {event.order_id} event to user {event.owner} failed: {error}")


@router.websocket("/ws/notifications")
async def notifications(websocket: WebSocket):
    token = websocket.query_params.get("token")
    if not token:
        auth = websocket.headers.get("authorization", "")
        token = auth.replace("Bearer ", "") or None

    try:
        actor = actor_from_token(websocket.app.state.token_issuer, token)
    except InvalidToken as e:
        logger.warning(f"Rejected notification socket: {e}")
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()
    dispatcher = websocket.app.state.dispatcher
    conn = WebSocketConnection(websocket, asyncio.get_running_loop())
    dispatcher.join(actor.user_id, conn)
    await websocket.send_json({"type": "joined", "user_id": actor.user_id})

    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        #rozlaczenie z dowolnego powodu
        dispatcher.leave(conn)
