"""
모델에 보낼 메시지 구성과 모델 선택.
시스템 지시 → (있으면) 현재 캔버스 요약 → 이전 대화 → 사용자 명령 순서로 쌓습니다.
"""
import re

from pydantic import BaseModel

from .commands import CommandRequest
from .config import GatewayConfig

SYSTEM_PROMPT = """You are a helpful AI assistant for a collaborative canvas application (5000x5000px canvas, center is 2500,2500).
Your job is to help users create, manipulate, and organize shapes on the canvas using the provided tools.

CRITICAL RULES:
1. Prefer the smart manipulation tools (moveShapeByDescription, resizeShapeByDescription) whenever the user describes a shape by type or color. Example: "Resize the circle to be twice as big" -> resizeShapeByDescription(type="circle", scaleMultiplier=2).
2. Only fall back to findShapes* plus low-level tools (moveShape, resizeShape) when you already know the exact shapeId. Low-level tools need explicit numeric values.
3. For "Create a grid of NxN", use createMultipleShapes with one shape definition and count=N*N, or individual createRectangle calls.
4. Be precise with coordinates and dimensions; default to sensible values when the user omits them.
5. Always respond with the tool calls that execute the user's request; do not leave commands partially complete.
6. For "Arrange these shapes" or "Space these elements", call arrangeHorizontal/arrangeVertical/distributeHorizontally directly with shapeIds=[] to arrange ALL shapes.
7. For rotation, use rotateShapes with shapeIds=[].
8. Tool arguments must be a JSON object with exactly the declared parameters. Colors are hex strings (e.g. "#FF0000")."""


def canvas_state_to_context(shapes: list[dict], max_items: int = 100) -> str:
    """캔버스 도형 목록을 AI가 위치까지 파악할 수 있도록 요약 (최신 순). 원본은 건드리지 않음."""
    if not shapes:
        return "(캔버스 비어 있음)"
    recent = list(shapes)[-max_items:][::-1]
    lines = [f"{len(shapes)} shape(s) on canvas" + (f", showing latest {len(recent)}" if len(shapes) > len(recent) else "") + ":"]
    for shape in recent:
        sid = shape.get("id", "?")
        t = shape.get("type", "?")
        color = shape.get("color", "")
        x, y = shape.get("x"), shape.get("y")
        if t == "rectangle":
            lines.append(f"- [{sid}] rectangle left-top=({x},{y}) size={shape.get('width')}x{shape.get('height')} color={color}")
        elif t == "circle":
            lines.append(f"- [{sid}] circle center=({x},{y}) r={shape.get('radius')} color={color}")
        elif t == "text":
            text = str(shape.get("text", ""))
            if len(text) > 40:
                text = text[:40] + "..."
            lines.append(f"- [{sid}] text {text!r} at ({x},{y}) fontSize={shape.get('fontSize')} color={color}")
        else:
            lines.append(f"- [{sid}] {t} at ({x},{y}) color={color}")
    return "\n".join(lines)


def build_messages(request: CommandRequest, canvas_state: list[dict] | None = None) -> list[dict]:
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    if canvas_state is not None:
        messages.append({
            "role": "system",
            "content": "Current canvas (read this first; positions help you locate existing elements):\n"
            + canvas_state_to_context(canvas_state),
        })
    messages.extend({"role": m.role, "content": m.content} for m in request.conversation_history)
    messages.append({"role": "user", "content": request.prompt})
    return messages


# 모델별 최대 출력 토큰
OPENAI_MODELS = {
    "gpt-4o": 16384,
    "gpt-4o-mini": 16384,
    "gpt-4-turbo": 4096,
    "gpt-3.5-turbo": 4096,
}
MAX_COMPLETION_TOKENS = 16000


class ModelChoice(BaseModel):
    model: str
    max_output_tokens: int | None
    timeout_ms: int


_BATCH_RE = re.compile(r"\b(all|every|multiple|batch)\b")
_MULTI_STEP_RE = re.compile(r"\b(and then|after|arrange|organize|distribute)\b")


def complexity_score(prompt: str, shape_count: int = 0) -> float:
    """명령이 얼마나 큰 작업인지 대략 점수화 (숫자 크기, 그리드, 일괄·다단계 키워드, 도형 수)."""
    lower = prompt.lower()
    # 아주 긴 숫자열은 9자리씩 끊어서 읽음 (int 변환 자릿수 한도)
    numbers = [int(n) for n in re.findall(r"\d{1,9}", prompt)]
    biggest = max(numbers) if numbers else 0
    score = 0.0
    if biggest >= 500:
        score += 100
    elif biggest >= 100:
        score += 50
    elif biggest >= 50:
        score += 30
    elif biggest >= 20:
        score += 20
    elif biggest >= 10:
        score += 10
    # NxN 그리드는 칸마다 도구 호출이 하나씩 필요
    if "grid" in lower:
        score += numbers[0] * numbers[1] * 2 if len(numbers) >= 2 else 20
    if _BATCH_RE.search(lower):
        score += 30
    if _MULTI_STEP_RE.search(lower):
        score += 15
    score += min(shape_count / 10, 50)
    return score


def select_model(prompt: str, shape_count: int, config: GatewayConfig) -> ModelChoice:
    """설정 모델이 "auto"가 아니면 그대로, "auto"면 복잡도에 따라 모델과 마감 시간을 고름."""
    if config.model != "auto":
        tokens = OPENAI_MODELS.get(config.model)
        return ModelChoice(
            model=config.model,
            max_output_tokens=min(tokens, MAX_COMPLETION_TOKENS) if tokens else None,
            timeout_ms=config.request_timeout_ms,
        )
    score = complexity_score(prompt, shape_count)
    timeout_ms = config.request_timeout_ms
    if score >= 80:
        model = "gpt-4o"
        timeout_ms = max(config.request_timeout_ms, config.large_request_timeout_ms)
    elif score >= 40:
        model = "gpt-4o-mini"
    elif score >= 20:
        model = "gpt-4-turbo"
    else:
        model = "gpt-3.5-turbo"
    print(f"[gateway] complexity score {score:.0f} -> {model} ({timeout_ms}ms) for {prompt[:50]!r}")
    return ModelChoice(model=model, max_output_tokens=min(OPENAI_MODELS[model], MAX_COMPLETION_TOKENS), timeout_ms=timeout_ms)
