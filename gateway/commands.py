"""
자연어 명령 요청과 처리 결과 타입 정의.
UI는 CommandRequest를 보내고, 게이트웨이는 항상 CommandOutcome 중 정확히 하나를 돌려줍니다.
"""
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .tools import DecodedToolCall, RawToolCall


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str


class CommandRequest(BaseModel):
    """사용자 한 번의 명령. 만든 뒤에는 바꿀 수 없음."""
    model_config = ConfigDict(frozen=True)

    prompt: str
    user_id: str
    conversation_history: tuple[Message, ...] = ()

    @field_validator("prompt", "user_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


# ----- 결과 (kind로 구분되는 유니온) -----

class Success(BaseModel):
    kind: Literal["success"] = "success"
    success: Literal[True] = True
    message: str = "Command executed successfully"
    error: None = None
    tool_calls: list[DecodedToolCall]
    text: str | None = None
    model: str | None = None


class NoAction(BaseModel):
    kind: Literal["no_action"] = "no_action"
    success: Literal[False] = False
    message: str = "No action taken"
    error: Literal["NO_TOOL_CALLS"] = "NO_TOOL_CALLS"
    text: str | None = None
    finish_reason: str | None = None


class RateLimited(BaseModel):
    kind: Literal["rate_limited"] = "rate_limited"
    success: Literal[False] = False
    message: str = "Rate limit exceeded. Please wait a moment."
    error: Literal["RATE_LIMIT_EXCEEDED"] = "RATE_LIMIT_EXCEEDED"
    retry_after: float  # 초


class Timeout(BaseModel):
    kind: Literal["timeout"] = "timeout"
    success: Literal[False] = False
    message: str = "Request timeout"
    error: Literal["TIMEOUT"] = "TIMEOUT"
    deadline_ms: int


class TransportError(BaseModel):
    kind: Literal["transport_error"] = "transport_error"
    success: Literal[False] = False
    message: str = "Failed to process command"
    error: Literal["TRANSPORT_ERROR"] = "TRANSPORT_ERROR"
    cause: str
    status_code: int | None = None


class DecodeError(BaseModel):
    kind: Literal["decode_error"] = "decode_error"
    success: Literal[False] = False
    message: str = "AI returned a tool call that could not be decoded"
    error: Literal["DECODE_ERROR"] = "DECODE_ERROR"
    tool_call: RawToolCall
    cause: str


CommandOutcome = Annotated[
    Success | NoAction | RateLimited | Timeout | TransportError | DecodeError,
    Field(discriminator="kind"),
]
