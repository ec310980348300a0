# storefront/services/notification_service.py
import json
import threading
from typing import Dict, Optional, Protocol, Set

import redis

from storefront.domain.events import OrderStatusChanged
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, NOTIFICATION_CHANNEL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class Connection(Protocol):
    def send(self, event: OrderStatusChanged) -> None:
        ...


class EventPublisher(Protocol):
    def publish(self, event: OrderStatusChanged) -> object:
        ...


class _UserSlot:
    """Connections of one user plus the lock that serializes them."""

    __slots__ = ("lock", "connections", "retired")

    def __init__(self):
        self.lock = threading.Lock()
        self.connections: Set[Connection] = set()
        #ustawione gdy ostatnie polaczenie wyszlo i slot zniknal z rejestru
        self.retired = False


class NotificationDispatcher:
    """
    Best-effort, real-time fan-out of order status events.

    -user_id -> slot z polaczeniami (kilka urzadzen na usera)
    -operacje na jednym userze wzajemnie wykluczone, rozni userzy nie konkuruja
    -slot istnieje tylko dopoki user ma polaczenia, rejestr nie rosnie z liczba userow
    -brak kolejki: user bez polaczen traci event, stan zawsze jest w zamowieniu
    """

    def __init__(self):
        self._slots: Dict[str, _UserSlot] = {}
        self._owner_of: Dict[Connection, str] = {}
        #krotki lock tylko na dodanie/usuniecie slotu, nigdy na czas wysylki
        self._registry_lock = threading.Lock()

    def _slot(self, user_id: str, create: bool = False) -> Optional[_UserSlot]:
        with self._registry_lock:
            slot = self._slots.get(user_id)
            if slot is None and create:
                slot = self._slots[user_id] = _UserSlot()
            return slot

    def join(self, user_id: str, connection: Connection):
        #polaczenie nalezy do jednej sesji transportu, ktora wola join/leave po kolei,
        #wiec wpis tego polaczenia w _owner_of nie zmienia sie pod nami
        previous = self._owner_of.get(connection)
        if previous is not None and previous != user_id:
            self.leave(connection)

        while True:
            slot = self._slot(user_id, create=True)
            with slot.lock:
                if slot.retired:
                    #ostatnie polaczenie wyszlo w miedzyczasie, bierzemy nowy slot
                    continue
                if connection in slot.connections:
                    return
                slot.connections.add(connection)
                self._owner_of[connection] = user_id
                break
        logger.info(f"Connection joined notifications for user {user_id}")

    def leave(self, connection: Connection):
        user_id = self._owner_of.get(connection)
        if user_id is None:
            return

        slot = self._slot(user_id)
        if slot is None:
            self._owner_of.pop(connection, None)
            return

        with slot.lock:
            slot.connections.discard(connection)
            if self._owner_of.get(connection) == user_id:
                del self._owner_of[connection]
            if not slot.connections and not slot.retired:
                slot.retired = True
                with self._registry_lock:
                    if self._slots.get(user_id) is slot:
                        del self._slots[user_id]
        logger.info(f"Connection left notifications for user {user_id}")

    def publish(self, event: OrderStatusChanged) -> int:
        """Returns how many connections the event was handed to."""
        slot = self._slot(event.owner)
        if slot is None:
            logger.info(f"No live connections for user {event.owner}, order {event.order_id} event dropped")
            return 0

        delivered = 0
        with slot.lock:
            for conn in list(slot.connections):
                try:
                    conn.send(event)
                    delivered += 1
                except Exception as e:
                    #polaczenie zniklo w trakcie (wyscig z leave), nie ponawiamy
                    logger.warning(f"Delivery to a connection of user {event.owner} failed: {e}")
        if not delivered:
            logger.info(f"No live connections for user {event.owner}, order {event.order_id} event dropped")
        return delivered

    def connections_of(self, user_id: str) -> Set[Connection]:
        slot = self._slot(user_id)
        if slot is None:
            return set()
        with slot.lock:
            return set(slot.connections)

    def tracked_users(self) -> int:
        with self._registry_lock:
            return len(self._slots)

    def close(self):
        with self._registry_lock:
            self._slots.clear()
            self._owner_of.clear()
        logger.info("Notification dispatcher closed")


class RedisEventRelay:
    """
    Carries events between server processes over redis pub/sub.
    Ledger in any process (api or celery worker) publishes here, every api
    process subscribes and hands the event to its local dispatcher.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        url: str | None = None,
        client: redis.Redis | None = None,
        channel: str = NOTIFICATION_CHANNEL,
    ):
        self.dispatcher = dispatcher
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.channel = channel
        self._pubsub = None
        self._thread = None

    @redis_retry()
    def publish(self, event: OrderStatusChanged) -> int:
        return self.redis.publish(self.channel, json.dumps(event.to_dict()))

    def _on_message(self, message: dict):
        try:
            event = OrderStatusChanged.from_dict(json.loads(message["data"]))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed event on {self.channel}: {e}")
            return
        self.dispatcher.publish(event)

    def start(self):
        if self.dispatcher is None:
            raise RuntimeError("Relay needs a dispatcher to subscribe")
        self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        self._pubsub.subscribe(**{self.channel: self._on_message})
        self._thread = self._pubsub.run_in_thread(sleep_time=0.1, daemon=True)
        logger.info(f"Event relay subscribed to {self.channel}")

    def stop(self):
        if self._thread is not None:
            self._thread.stop()
            self._thread.join(timeout=2)
            self._thread = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None
        logger.info(f"Event relay unsubscribed from {self.channel}")
