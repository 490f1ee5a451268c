import json
import redis
from urllib.parse import quote_plus

# Logger
from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.redis_wrapper")

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

REDIS_URL = configs.REDIS_URL

# Deletes KEYS[1] only while it still holds ARGV[1]
COMPARE_AND_DELETE = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def redemption_lock_key(code: str, order_id: str) -> str:
    """Key segments are URL-encoded so codes and order ids cannot forge a key."""
    return f"redemption_lock:{quote_plus(str(code), safe='')}:{quote_plus(str(order_id), safe='')}"


class RedisJSONWrapper:
    def __init__(self, redis_uri=REDIS_URL, database=None):
        if database is not None:
            redis_uri = f"{redis_uri}/{database}"
        try:
            self.redis_client = redis.from_url(redis_uri, socket_connect_timeout=1)
            self.redis_client.ping()
            self.connected = True
        except redis.exceptions.RedisError as e:
            logger.error(f"redis_connect_error | uri={redis_uri} error={e}")
            self.redis_client = None
            self.connected = False

    def set_if_not_exists_with_ttl(self, key, data, ttl_seconds: int) -> bool:
        """
        Atomically set a key with TTL only if it doesn't exist (SET NX EX).

        Returns:
            True if key was set (didn't exist before)
            False if key already exists
        """
        value = json.dumps(data, sort_keys=True)
        result = self.redis_client.set(key, value, nx=True, ex=ttl_seconds)
        return bool(result)

    def delete_if_matches(self, key, data) -> bool:
        """Delete ``key`` only if it still holds ``data``, in one Lua call."""
        value = json.dumps(data, sort_keys=True)
        return self.redis_client.eval(COMPARE_AND_DELETE, 1, key, value) > 0
