import redis
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL
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
    -lock na zadanie (np. tylko jeden sweep platnosci naraz)
    -zwalnianie locka tylko przez wlasciciela
    -atomowosc przy pomocy lua
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(name: str) -> str:
        return f"lock:{name}"

    @redis_retry()
    def acquire(self, name: str, owner: str, ttl: int) -> bool:
        key = self._key(name)
        logger.info(f"Acquire lock {key} for {owner}")
        #SET lock:reconcile "worker-1" NX EX 300
        return bool(
            self.redis.set(
                name=key,
                value=owner,
                nx=True, #not eXists, jesli nie istnieje to True, jak jest to nic nie rob i False
                ex=ttl, #Expire, lock sam wygasa jesli worker padnie
            )
        )

    @redis_retry()
    def release(self, name: str, owner: str) -> bool:
        key = self._key(name)
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
