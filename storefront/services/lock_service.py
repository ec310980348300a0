import uuid
from contextlib import contextmanager

import redis
from tenacity import Retrying, RetryError, retry_if_result, stop_after_delay, wait_exponential

from storefront.domain.errors import LockTimeout
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, ORDER_LOCK_TTL_SECONDS, ORDER_LOCK_WAIT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje atomowo przez lua, skrypt dziala jako jedna nieprzerywalna operacja
#nie mozna wcisnac sie miedzy GET a DEL, wiec tu jest get + porownanie + del wszystko naraz


class LockService:
    """
    -sekcja krytyczna per zamowienie (order + jego aktualna platnosc)
    -dziala miedzy procesami, klucz w redisie
    -zwalnianie tylko przez wlasciciela (token), atomowo przez lua
    """

    def __init__(
        self,
        url: str | None = None,
        client: redis.Redis | None = None,
        ttl: int = ORDER_LOCK_TTL_SECONDS,
        wait_seconds: float = ORDER_LOCK_WAIT_SECONDS,
    ):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.ttl = ttl
        self.wait_seconds = wait_seconds

    @staticmethod
    def _key(order_id: str) -> str:
        return f"order:{order_id}:lock"

    @redis_retry()
    def acquire_order_lock(self, order_id: str, token: str, ttl: int | None = None) -> bool:
        #SET order:<id>:lock "<token>" NX EX 30
        return bool(
            self.redis.set(
                name=self._key(order_id),
                value=token,
                nx=True,
                ex=ttl or self.ttl,
            )
        )

    @redis_retry()
    def release_order_lock(self, order_id: str, token: str) -> bool:
        res = self.redis.eval(_RELEASE_LUA, 1, self._key(order_id), token)
        return bool(res)

    @contextmanager
    def order_lock(self, order_id: str):
        """
        Blocks until the lock on `order_id` is held, then yields.
        Raises LockTimeout when the lock stays busy longer than `wait_seconds`.
        """
        token = uuid.uuid4().hex
        retrying = Retrying(
            stop=stop_after_delay(self.wait_seconds),
            wait=wait_exponential(multiplier=0.01, min=0.01, max=0.2),
            retry=retry_if_result(lambda acquired: not acquired),
        )
        try:
            retrying(self.acquire_order_lock, order_id, token)
        except RetryError:
            logger.warning(f"Lock {self._key(order_id)} busy for more than {self.wait_seconds}s")
            raise LockTimeout(f"Order {order_id} is busy, retry later")

        try:
            yield token
        finally:
            if not self.release_order_lock(order_id, token):
                #ttl minal w trakcie sekcji krytycznej
                logger.warning(f"Lock {self._key(order_id)} expired before release")
