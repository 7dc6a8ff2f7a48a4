"""
게이트웨이 설정. 환경변수(.env 포함)에서 읽고, 잘못된 값이면 시작할 때 바로 실패합니다.
"""
import os
from pathlib import Path

import httpx
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# 프로젝트 루트 (gateway의 상위)
ROOT = Path(__file__).resolve().parent.parent


class GatewayConfig(BaseModel):
    # 사용자별 요청 한도 (윈도우당 최대 요청 수 / 윈도우 길이)
    max_requests_per_window: int = Field(10, ge=1)
    window_duration_seconds: float = Field(60.0, gt=0)
    # 외부 AI 호출 마감 시간. 대량 작업은 large 쪽을 사용
    request_timeout_ms: int = Field(10_000, gt=0)
    large_request_timeout_ms: int = Field(30_000, gt=0)
    # "auto"면 명령 복잡도에 따라 모델을 고름
    model: str = "gpt-4o-mini"
    reasoning_effort: str | None = None
    response_verbosity: str | None = None
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    # 0이면 무제한 (사용자 기록을 지우지 않음)
    max_tracked_users: int = Field(10_000, ge=0)
    # 0이면 응답 캐시 사용 안 함
    cache_ttl_seconds: float = Field(0.0, ge=0)
    cache_max_size: int = Field(100, ge=1)
    admin_token: str | None = None
    cors_origins: list[str] = ["*"]

    @field_validator("base_url")
    @classmethod
    def _valid_base_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        try:
            url = httpx.URL(v)
        except httpx.InvalidURL as e:
            raise ValueError(f"invalid base_url {v!r}: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"base_url must be an http(s) URL with a host, got {v!r}")
        return v

    @property
    def deadline_seconds(self) -> float:
        return self.request_timeout_ms / 1000

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "GatewayConfig":
        load_dotenv(env_file or ROOT / ".env")
        env_map = {
            "max_requests_per_window": "MAX_REQUESTS_PER_WINDOW",
            "window_duration_seconds": "WINDOW_DURATION_SECONDS",
            "request_timeout_ms": "REQUEST_TIMEOUT_MS",
            "large_request_timeout_ms": "LARGE_REQUEST_TIMEOUT_MS",
            "model": "OPENAI_MODEL",
            "reasoning_effort": "OPENAI_REASONING_EFFORT",
            "response_verbosity": "OPENAI_VERBOSITY",
            "api_key": "OPENAI_API_KEY",
            "base_url": "OPENAI_BASE_URL",
            "max_tracked_users": "MAX_TRACKED_USERS",
            "cache_ttl_seconds": "RESPONSE_CACHE_TTL_SECONDS",
            "cache_max_size": "RESPONSE_CACHE_MAX_SIZE",
            "admin_token": "GATEWAY_ADMIN_TOKEN",
        }
        values: dict = {}
        for field, env_var in env_map.items():
            raw = (os.getenv(env_var) or "").strip()
            if raw:
                values[field] = raw
        # CORS: 쉼표 구분 목록, 없으면 모두 허용
        cors = (os.getenv("CORS_ORIGINS") or "").strip()
        if cors:
            values["cors_origins"] = [o.strip() for o in cors.split(",") if o.strip()]
        return cls.model_validate(values)
