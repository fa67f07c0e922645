import json
import math
import time
from typing import Any, Optional
from redis import Redis


def test_stats_key(test_id: str) -> str:
    return f"analytics:test:{test_id}"


def user_stats_key(user_id: str, test_id: str) -> str:
    return f"analytics:user:{user_id}:{test_id}"


def cache_json(client: Redis, key: str, value: Any, ttl: int) -> None:
    client.set(key, json.dumps(value), ex=ttl)


def read_json(client: Redis, key: str) -> Optional[Any]:
    raw = client.get(key)
    return json.loads(raw) if raw else None


def rate_limit_key(name: str, window: int) -> str:
    return f"rate:{name}:{window}"


def try_acquire(client: Redis, name: str, limit: int, now: Optional[float] = None) -> bool:
    """Take one slot of a fixed one-second window shared by every worker process."""
    window = int(now if now is not None else time.time())
    key = rate_limit_key(name, window)
    pipe = client.pipeline()
    pipe.incr(key, 1)
    pipe.expire(key, 2)
    count, _ = pipe.execute()
    return count <= limit


def wait_for_slot(client: Redis, name: str, limit: int, sleep=time.sleep, clock=time.time) -> None:
    """Block until the named queue may start another job. A limit <= 0 disables throttling."""
    if limit <= 0:
        return
    while not try_acquire(client, name, limit, clock()):
        now = clock()
        sleep(max(math.ceil(now) - now, 0.01))
