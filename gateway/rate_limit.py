"""
사용자별 요청 허용 여부 판단 (고정 윈도우 방식).
- 윈도우 시작 후 window_duration 안에는 max_per_window 번까지만 허용
- 윈도우가 지나면 다음 요청 때 그 자리에서 새 윈도우 시작 (백그라운드 정리 없음)
"""
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel


@dataclass
class RateLimitRecord:
    request_count: int
    window_start: float


class Admitted(BaseModel):
    kind: Literal["admitted"] = "admitted"


class Rejected(BaseModel):
    kind: Literal["rejected"] = "rejected"
    retry_after: float  # 초


class RateLimitStatus(BaseModel):
    remaining: int
    reset_in: float  # 초


class AdmissionController:
    """사용자별 RateLimitRecord를 혼자 소유하고 바꾸는 저장소.

    max_tracked_users를 넘으면 가장 오래 접근하지 않은 사용자 기록부터 버립니다 (0이면 무제한).
    버려진 사용자는 다음 요청 때 새 윈도우로 시작합니다.
    """

    def __init__(self, max_per_window: int = 10, window_duration: float = 60.0, max_tracked_users: int = 0):
        if max_per_window < 1:
            raise ValueError("max_per_window must be >= 1")
        if window_duration <= 0:
            raise ValueError("window_duration must be > 0")
        self.max_per_window = max_per_window
        self.window_duration = window_duration
        self.max_tracked_users = max_tracked_users
        self._records: OrderedDict[str, RateLimitRecord] = OrderedDict()
        # 읽기-수정-쓰기 전체를 묶는 락. 안에서 await 하지 않으므로 코루틴·스레드 모두에 대해 원자적
        self._lock = threading.Lock()

    def _elapsed(self, record: RateLimitRecord, now: float) -> float:
        # 시계가 뒤로 가도 윈도우 경계는 뒤로 움직이지 않음
        return max(0.0, now - record.window_start)

    def try_admit(self, user_id: str, now: float | None = None) -> Admitted | Rejected:
        if now is None:
            now = time.monotonic()
        with self._lock:
            record = self._records.get(user_id)
            if record is None or self._elapsed(record, now) >= self.window_duration:
                self._records[user_id] = RateLimitRecord(request_count=1, window_start=now)
                self._records.move_to_end(user_id)
                self._evict_overflow()
                return Admitted()
            self._records.move_to_end(user_id)
            if record.request_count < self.max_per_window:
                record.request_count += 1
                return Admitted()
            retry_after = self.window_duration - self._elapsed(record, now)
        print(f"[admission] {user_id} rejected ({self.max_per_window}/{self.window_duration:.0f}s), retry in {retry_after:.1f}s")
        return Rejected(retry_after=retry_after)

    def status_for(self, user_id: str, now: float | None = None) -> RateLimitStatus:
        """UI 표시용 조회. 기록을 바꾸지 않음 (만료된 윈도우도 여기서 롤오버하지 않음)."""
        if now is None:
            now = time.monotonic()
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                return RateLimitStatus(remaining=self.max_per_window, reset_in=0.0)
            count, elapsed = record.request_count, self._elapsed(record, now)
        if elapsed >= self.window_duration:
            return RateLimitStatus(remaining=self.max_per_window, reset_in=0.0)
        return RateLimitStatus(
            remaining=max(0, self.max_per_window - count),
            reset_in=self.window_duration - elapsed,
        )

    def reset(self, user_id: str) -> None:
        """관리자용: 해당 사용자 기록을 지워 한도를 처음 상태로 되돌림."""
        with self._lock:
            self._records.pop(user_id, None)

    def tracked_users(self) -> int:
        with self._lock:
            return len(self._records)

    def _evict_overflow(self) -> None:
        # 락을 잡은 상태에서만 호출
        if not self.max_tracked_users:
            return
        while len(self._records) > self.max_tracked_users:
            self._records.popitem(last=False)
