# orderflow/services/lock_service.py
import redis
from orderflow.utils.retry import redis_retry
from orderflow.utils.settings import REDIS_URL
from orderflow.utils.logging import get_logger

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
#nie mozna wcisnac sie miedzy GET a DEL


class LockService:
    """
    -krotki lock na zamowienie podczas inicjowania platnosci
    -zwalnianie locka tylko przez wlasciciela (lua)
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(order_id: int) -> str:
        return f"order:{order_id}:payment-lock"

    @redis_retry()
    def acquire_order_lock(self, order_id: int, owner: str, ttl: int) -> bool:
        key = self._key(order_id)
        logger.info(f"Acquire lock {key} for {owner}")
        #SET order:1:payment-lock "owner" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=owner,
                nx=True, #tylko jesli klucz nie istnieje
                ex=ttl, #wygasa sam, nie trzeba recznie czyscic
            )
        )

    @redis_retry()
    def release_order_lock(self, order_id: int, owner: str) -> bool:
        key = self._key(order_id)
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
