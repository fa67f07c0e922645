from fastapi import APIRouter, Depends, HTTPException
from examprep.api.deps import get_redis
from examprep.core.auth import TokenData, require_user
from examprep.core.cache import read_json, test_stats_key, user_stats_key

router = APIRouter()


def _cached(redis, key: str):
    stats = read_json(redis, key) if redis is not None else None
    if stats is None:
        raise HTTPException(404, "Analytics not available")
    return stats


@router.get("/{test_id}/stats")
def test_stats(test_id: str, redis=Depends(get_redis)):
    return _cached(redis, test_stats_key(test_id))


@router.get("/{test_id}/stats/users/{user_id}")
def user_test_stats(test_id: str, user_id: str, user: TokenData = Depends(require_user), redis=Depends(get_redis)):
    """Latest submitted attempt of one candidate: attempt id, score, percentile."""
    if not user.can_view(user_id):
        raise HTTPException(403, "Forbidden")
    return _cached(redis, user_stats_key(user_id, test_id))
