"""
캔버스 명령 게이트웨이 서버.
- POST /api/command: 자연어 명령 → 도구 호출(또는 실패 사유) 반환. 실제 도형 조작은 캔버스 쪽에서 실행
- GET /api/rate-limit/{user_id}: 남은 요청 수·초기화까지 남은 시간 (UI 표시용)
- POST /api/admin/rate-limit/{user_id}/reset: 운영자용 한도 초기화
"""
import math
import secrets

import httpx
from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .commands import CommandRequest, Message, RateLimited
from .config import GatewayConfig
from .dispatcher import CommandDispatcher
from .tools import tool_categories, tool_schemas

# 결과 종류별 HTTP 상태코드 (본문 모양은 항상 동일)
STATUS_BY_KIND = {
    "success": 200,
    "no_action": 200,
    "rate_limited": 429,
    "timeout": 504,
    "transport_error": 502,
    "decode_error": 502,
}


class CommandBody(BaseModel):
    prompt: str
    user_id: str  # 인증 계층에서 이미 확인된 사용자 ID
    conversation_history: list[Message] = []
    canvas_state: list[dict] | None = None  # 클라이언트가 보낸 현재 캔버스 도형 (읽기 전용 맥락)


def create_app(config: GatewayConfig, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    dispatcher = CommandDispatcher.from_config(config, transport=transport)
    app = FastAPI(title="Canvas Command Gateway")
    app.state.dispatcher = dispatcher
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if not config.api_key:
        print("[gateway] OPENAI_API_KEY 미설정: 외부 AI 호출은 401로 실패합니다.")

    @app.get("/health", include_in_schema=False)
    @app.get("/api/health", include_in_schema=False)
    async def health():
        """로드밸런서·모니터링용 상태 확인."""
        return {"status": "ok"}

    @app.get("/api/tools")
    async def list_tools():
        return {"tools": tool_schemas(), "categories": tool_categories()}

    @app.post("/api/command")
    async def run_command(body: CommandBody):
        try:
            request = CommandRequest(
                prompt=body.prompt,
                user_id=body.user_id,
                conversation_history=tuple(body.conversation_history),
            )
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=e.errors(include_url=False, include_context=False))
        outcome = await dispatcher.dispatch(request, canvas_state=body.canvas_state)
        headers = {}
        if isinstance(outcome, RateLimited):
            headers["Retry-After"] = str(max(1, math.ceil(outcome.retry_after)))
        if not outcome.success:
            print(f"[gateway] {body.user_id}: {outcome.kind} - {outcome.message}")
        return JSONResponse(
            content=outcome.model_dump(mode="json", by_alias=True),
            status_code=STATUS_BY_KIND[outcome.kind],
            headers=headers,
        )

    @app.get("/api/rate-limit/{user_id}")
    async def rate_limit_status(user_id: str):
        """예: "7 requests remaining, resets in 42s" 표시용."""
        return dispatcher.status_for(user_id).model_dump()

    @app.post("/api/admin/rate-limit/{user_id}/reset")
    async def reset_rate_limit(user_id: str, x_admin_token: str | None = Header(None)):
        if not config.admin_token:
            raise HTTPException(status_code=503, detail="관리자 토큰(GATEWAY_ADMIN_TOKEN)이 설정되지 않았습니다.")
        if not x_admin_token or not secrets.compare_digest(x_admin_token, config.admin_token):
            raise HTTPException(status_code=403, detail="관리자 토큰이 올바르지 않습니다.")
        dispatcher.reset(user_id)
        return {"ok": True, **dispatcher.status_for(user_id).model_dump()}

    return app


app = create_app(GatewayConfig.from_env())
