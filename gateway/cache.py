"""
성공 응답 캐시 (같은 사용자·같은 명령·같은 맥락의 중복 호출 방지).
TTL이 지나면 버리고, 가득 차면 가장 오래된 항목부터 지웁니다.
"""
import hashlib
import json
import threading
import time
from collections import OrderedDict

from .commands import CommandRequest, Success


def cache_key(request: CommandRequest, canvas_state: list[dict] | None) -> str:
    context = json.dumps(
        {
            "history": [m.model_dump() for m in request.conversation_history],
            "canvas": canvas_state,
        },
        sort_keys=True,
        default=str,
    )
    digest = hashlib.sha256(context.encode("utf-8")).hexdigest()[:16]
    return f"{request.user_id}:{request.prompt}:{digest}"


class ResponseCache:
    def __init__(self, ttl_seconds: float, max_size: int = 100):
        self.ttl = ttl_seconds
        self.max_size = max_size
        self._entries: OrderedDict[str, tuple[Success, float]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    def get(self, key: str, now: float | None = None) -> Success | None:
        if not self.enabled:
            return None
        if now is None:
            now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            outcome, stored_at = entry
            if now - stored_at > self.ttl:
                del self._entries[key]
                return None
        print(f"[gateway] cache hit ({key[-16:]})")
        # 호출한 쪽이 결과를 고쳐도 저장본은 그대로
        return outcome.model_copy(deep=True)

    def set(self, key: str, outcome: Success, now: float | None = None) -> None:
        if not self.enabled:
            return
        if now is None:
            now = time.monotonic()
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (outcome.model_copy(deep=True), now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
