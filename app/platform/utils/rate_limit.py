from time import time
from fastapi import HTTPException, status
from typing import Dict, List
from threading import Lock

_requests: Dict[str, List[float]] = {}
_lock = Lock()

WINDOW_SECONDS = 60
MAX_REQUESTS = 10

def rate_limit(key: str, max_requests: int = MAX_REQUESTS, window_seconds: int = WINDOW_SECONDS):
    """Sliding-window limiter; raises 429 with Retry-After once `key` exceeds the window budget."""
    now = time()
    with _lock:
        timestamps = _requests.get(key, [])
        # Remove old timestamps outside window
        cutoff = now - window_seconds
        timestamps = [ts for ts in timestamps if ts > cutoff]
        if len(timestamps) >= max_requests:
            retry_after = max(1, int(timestamps[0] + window_seconds - now))
            _requests[key] = timestamps
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded. Please slow down.",
                headers={"Retry-After": str(retry_after)},
            )
        timestamps.append(now)
        _requests[key] = timestamps


def reset_rate_limits():
    with _lock:
        _requests.clear()
