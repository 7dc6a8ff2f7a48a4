"""
외부 AI(OpenAI 호환 chat completions) 단일 호출.
마감 시간과 경주시켜, 늦으면 기다리지 않고 바로 TimedOut을 돌려줍니다. 재시도는 하지 않습니다.
"""
import asyncio
from typing import Literal

import httpx
from pydantic import BaseModel, ConfigDict


class Completed(BaseModel):
    kind: Literal["completed"] = "completed"
    raw: dict


class TimedOut(BaseModel):
    kind: Literal["timed_out"] = "timed_out"


class Failed(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["failed"] = "failed"
    cause: str
    status_code: int | None = None
    # 로그용 원본 예외 (직렬화하지 않음)
    exception: BaseException | None = None


class UpstreamError(Exception):
    """외부 서비스가 오류 상태코드를 돌려준 경우."""

    def __init__(self, status_code: int, message: str, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _check_api_error(resp: httpx.Response, provider: str) -> None:
    """API 오류 시 사용자에게 보기 좋은 메시지로 바꿔 UpstreamError 발생. 상태코드는 메시지에 남김."""
    if resp.is_success:
        return
    body = (resp.text or "")[:500]
    code = resp.status_code
    if code == 401:
        raise UpstreamError(code, f"[401] {provider} API 키가 유효하지 않거나 만료되었습니다. 서버의 OPENAI_API_KEY를 확인하세요.", body)
    if code == 400:
        raise UpstreamError(code, f"[400] {provider}가 요청을 거부했습니다 (모델 이름·파라미터 확인). 응답: {body[:200]!r}", body)
    if code == 429:
        raise UpstreamError(code, f"[429] {provider} 사용 한도 초과 또는 요청 제한.", body)
    if code == 502:
        raise UpstreamError(code, "[502] Gateway(또는 프록시)가 Bad Gateway를 반환했습니다.", body)
    if code >= 500:
        raise UpstreamError(code, f"[{code}] {provider} 서버 오류. 잠시 후 다시 시도하세요.", body)
    raise UpstreamError(code, f"[{code}] {provider} 요청 실패.", body)


class CompletionInvoker:
    """외부 completion 엔드포인트 호출기. 사용자·요청 한도는 모름."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        reasoning_effort: str | None = None,
        response_verbosity: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        provider: str = "OpenAI",
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.reasoning_effort = reasoning_effort
        self.response_verbosity = response_verbosity
        self.provider = provider
        # 테스트에서 httpx.MockTransport 주입용
        self._transport = transport

    def build_payload(self, messages: list[dict], model: str, tools: list[dict], max_output_tokens: int | None = None) -> dict:
        payload: dict = {
            "model": model,
            "messages": messages,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
            payload["parallel_tool_calls"] = True
        if max_output_tokens:
            payload["max_completion_tokens"] = max_output_tokens
        # 설정값을 손대지 않고 그대로 전달
        if self.reasoning_effort:
            payload["reasoning_effort"] = self.reasoning_effort
        if self.response_verbosity:
            payload["verbosity"] = self.response_verbosity
        return payload

    async def _post(self, payload: dict, deadline: float) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        async with httpx.AsyncClient(timeout=deadline, transport=self._transport) as client:
            r = await client.post(f"{self.base_url}/chat/completions", headers=headers, json=payload)
            _check_api_error(r, self.provider)
            data = r.json()
        if not isinstance(data, dict):
            raise ValueError(f"{self.provider} 응답이 JSON 객체가 아닙니다")
        return data

    async def invoke(
        self,
        messages: list[dict],
        deadline: float,
        *,
        model: str,
        tools: list[dict] | None = None,
        max_output_tokens: int | None = None,
    ) -> Completed | TimedOut | Failed:
        """deadline(초) 안에 끝나면 Completed, 아니면 TimedOut, 오류면 Failed."""
        payload = self.build_payload(messages, model, tools or [], max_output_tokens)
        task = asyncio.create_task(self._post(payload, deadline))
        try:
            done, _ = await asyncio.wait({task}, timeout=deadline)
        except asyncio.CancelledError:
            # 호출한 쪽이 취소되면 진행 중인 요청도 함께 정리
            task.cancel()
            task.add_done_callback(_discard_result)
            raise
        if not done:
            # 늦게 도착하는 결과는 버림. httpx는 취소를 지원하므로 진행 중인 요청도 끊음
            task.cancel()
            task.add_done_callback(_discard_result)
            print(f"[completion] timeout after {deadline * 1000:.0f}ms (model={model})")
            return TimedOut()
        try:
            return Completed(raw=task.result())
        except httpx.TimeoutException:
            print(f"[completion] httpx timeout (model={model})")
            return TimedOut()
        except UpstreamError as e:
            print(f"[completion] upstream error {e.status_code}: {e} body={e.body[:200]!r}")
            return Failed(cause=str(e), status_code=e.status_code, exception=e)
        except Exception as e:
            # 네트워크 오류, 잘못된 URL, 잘못된 JSON 응답 등
            print(f"[completion] request failed: {type(e).__name__}: {e}")
            return Failed(cause=f"{type(e).__name__}: {e}", exception=e)


def _discard_result(task: asyncio.Task) -> None:
    # 버려진 호출의 예외가 "never retrieved" 경고로 남지 않게 꺼내서 무시
    if not task.cancelled():
        task.exception()
