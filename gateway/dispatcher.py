"""
자연어 명령 처리 진입점.
요청 한도 확인 → 맥락 구성 → 외부 AI 호출(마감 시간 있음) → 도구 호출 해석 → 결과 하나 반환.
예상 가능한 실패(한도 초과, 시간 초과, 전송 오류, 해석 오류, 도구 호출 없음)는 예외가 아니라 반환값입니다.
"""
import math
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .cache import ResponseCache, cache_key
from .commands import (
    CommandOutcome,
    CommandRequest,
    DecodeError,
    NoAction,
    RateLimited,
    Success,
    Timeout,
    TransportError,
)
from .completion import CompletionInvoker, Failed, TimedOut
from .config import GatewayConfig
from .prompts import build_messages, select_model
from .rate_limit import AdmissionController, RateLimitStatus, Rejected
from .tools import RawToolCall, ToolDecodeError, decode_tool_call, tool_schemas


# ----- completion 응답 껍데기 (필요한 필드만, 나머지는 무시) -----

class _FunctionPart(BaseModel):
    name: str
    # 문자열이 아니어도 여기서는 받아 두고, 도구 해석 단계에서 DecodeError로 거름
    arguments: Any = None


class _ToolCallPart(BaseModel):
    id: str
    type: str = "function"
    function: _FunctionPart


class _MessagePart(BaseModel):
    content: str | None = None
    tool_calls: list[_ToolCallPart] | None = None


class _Choice(BaseModel):
    message: _MessagePart
    finish_reason: str | None = None


class _Completion(BaseModel):
    model: str | None = None
    choices: list[_Choice] = Field(min_length=1)


def decode_completion(raw: dict, model: str | None = None) -> Success | NoAction | DecodeError | TransportError:
    """completion 응답 본문을 결과로 변환. 도구 호출이 하나라도 잘못되면 전체를 DecodeError로 (부분 실행 없음)."""
    try:
        completion = _Completion.model_validate(raw)
    except ValidationError as e:
        print(f"[gateway] malformed completion response: {e.error_count()} error(s)")
        return TransportError(cause=f"malformed completion response: {e.errors()[0].get('msg', 'invalid')}")
    choice = completion.choices[0]
    text = choice.message.content or None
    raw_calls = [
        RawToolCall(id=tc.id, name=tc.function.name, arguments="" if tc.function.arguments is None else tc.function.arguments)
        for tc in choice.message.tool_calls or []
    ]
    if not raw_calls:
        return NoAction(message=text or "No action taken", text=text, finish_reason=choice.finish_reason)
    decoded = []
    for call in raw_calls:
        try:
            decoded.append(decode_tool_call(call))
        except ToolDecodeError as e:
            print(f"[gateway] decode error in {call.name} ({call.id}): {e.cause}")
            return DecodeError(
                message=f"AI returned invalid arguments for {call.name}",
                tool_call=e.call,
                cause=e.cause,
            )
    return Success(
        message=text or "Command executed successfully",
        tool_calls=decoded,
        text=text,
        model=completion.model or model,
    )


class CommandDispatcher:
    """AdmissionController·CompletionInvoker·ResponseCache를 생성자로 받아 조합."""

    def __init__(
        self,
        config: GatewayConfig,
        admission: AdmissionController,
        invoker: CompletionInvoker,
        cache: ResponseCache | None = None,
    ):
        self.config = config
        self.admission = admission
        self.invoker = invoker
        self.cache = cache or ResponseCache(ttl_seconds=0)

    @classmethod
    def from_config(cls, config: GatewayConfig, transport=None) -> "CommandDispatcher":
        admission = AdmissionController(
            max_per_window=config.max_requests_per_window,
            window_duration=config.window_duration_seconds,
            max_tracked_users=config.max_tracked_users,
        )
        invoker = CompletionInvoker(
            api_key=config.api_key,
            base_url=config.base_url,
            reasoning_effort=config.reasoning_effort,
            response_verbosity=config.response_verbosity,
            transport=transport,
        )
        cache = ResponseCache(ttl_seconds=config.cache_ttl_seconds, max_size=config.cache_max_size)
        return cls(config, admission, invoker, cache)

    async def dispatch(
        self,
        request: CommandRequest,
        canvas_state: list[dict] | None = None,
        now: float | None = None,
    ) -> CommandOutcome:
        decision = self.admission.try_admit(request.user_id, now)
        if isinstance(decision, Rejected):
            wait = max(1, math.ceil(decision.retry_after))
            return RateLimited(
                message=f"Rate limit exceeded. Please wait {wait}s.",
                retry_after=decision.retry_after,
            )

        key = cache_key(request, canvas_state) if self.cache.enabled else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        choice = select_model(request.prompt, len(canvas_state or []), self.config)
        messages = build_messages(request, canvas_state)
        result = await self.invoker.invoke(
            messages,
            choice.timeout_ms / 1000,
            model=choice.model,
            tools=tool_schemas(),
            max_output_tokens=choice.max_output_tokens,
        )

        if isinstance(result, TimedOut):
            return Timeout(
                message=f"Request timeout: AI did not respond within {choice.timeout_ms / 1000:g}s. Please try again.",
                deadline_ms=choice.timeout_ms,
            )
        if isinstance(result, Failed):
            return TransportError(cause=result.cause, status_code=result.status_code)

        outcome = decode_completion(result.raw, model=choice.model)
        if key is not None and isinstance(outcome, Success):
            self.cache.set(key, outcome)
        return outcome

    def status_for(self, user_id: str, now: float | None = None) -> RateLimitStatus:
        return self.admission.status_for(user_id, now)

    def reset(self, user_id: str) -> None:
        print(f"[admission] rate limit reset for {user_id}")
        self.admission.reset(user_id)
