"""
캔버스 조작 도구(tool) 정의.
모델이 호출할 수 있는 함수 목록(OpenAI tools 형식)과, 도구 이름별 인자 타입을 한곳에 둡니다.
모델이 만든 인자(JSON 문자열)는 신뢰하지 않고 여기서 엄격하게 검증합니다.
"""
import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, ValidationError, model_validator
from pydantic.alias_generators import to_camel

ShapeType = Literal["rectangle", "circle", "text"]
_SHAPE_REQUIRED = {
    "rectangle": ("width", "height"),
    "circle": ("radius",),
    "text": ("text",),
}


class ToolArguments(BaseModel):
    """모든 도구 인자의 공통 설정: camelCase 키, 모르는 키 거부, 타입 강제 변환 없음."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        strict=True,
        frozen=True,
    )


# ----- 생성 -----

class CreateRectangle(ToolArguments):
    x: float
    y: float
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    color: str


class CreateCircle(ToolArguments):
    x: float
    y: float
    radius: float = Field(gt=0)
    color: str


class CreateText(ToolArguments):
    x: float
    y: float
    text: str
    font_size: float = Field(24, gt=0)
    color: str = "#000000"


class ShapeSpec(ToolArguments):
    type: ShapeType
    x: float
    y: float
    color: str
    width: float | None = Field(None, gt=0)
    height: float | None = Field(None, gt=0)
    radius: float | None = Field(None, gt=0)
    text: str | None = None
    font_size: float | None = Field(None, gt=0)

    @model_validator(mode="after")
    def _required_for_type(self) -> "ShapeSpec":
        # 종류마다 그리는 데 꼭 필요한 값
        missing = [f for f in _SHAPE_REQUIRED[self.type] if getattr(self, f) is None]
        if missing:
            raise ValueError(f"{self.type} requires {', '.join(missing)}")
        return self


class CreateMultipleShapes(ToolArguments):
    shapes: list[ShapeSpec] = Field(min_length=1)
    count: int | None = Field(None, ge=1)
    spacing_x: float | None = None
    spacing_y: float | None = None


# ----- 설명(색·종류)으로 찾아서 조작 -----

class MoveShapeByDescription(ToolArguments):
    type: ShapeType | None = None
    color: str | None = None
    x: float
    y: float


class ResizeShapeByDescription(ToolArguments):
    type: ShapeType | None = None
    color: str | None = None
    scale_multiplier: float | None = Field(None, gt=0)
    new_width: float | None = Field(None, gt=0)
    new_height: float | None = Field(None, gt=0)
    new_radius: float | None = Field(None, gt=0)


class RotateShapes(ToolArguments):
    shape_ids: list[str]
    rotation: float


# ----- ID 기반 조작 -----

class MoveShape(ToolArguments):
    shape_id: str
    x: float
    y: float


class ResizeShape(ToolArguments):
    shape_id: str
    width: float | None = Field(None, gt=0)
    height: float | None = Field(None, gt=0)
    radius: float | None = Field(None, gt=0)


class ChangeColor(ToolArguments):
    shape_id: str
    color: str


class UpdateText(ToolArguments):
    shape_id: str
    text: str | None = None
    font_size: float | None = Field(None, gt=0)


class DeleteShape(ToolArguments):
    shape_id: str


class DeleteMultipleShapes(ToolArguments):
    shape_ids: list[str]


# ----- 조회 -----

class GetCanvasState(ToolArguments):
    pass


class FindShapesByType(ToolArguments):
    type: ShapeType


class FindShapesByColor(ToolArguments):
    color: str


class FindShapesByText(ToolArguments):
    search_text: str


# ----- 배치 -----

class ArrangeHorizontal(ToolArguments):
    shape_ids: list[str]
    start_x: float
    y: float
    spacing: float = 20


class ArrangeVertical(ToolArguments):
    shape_ids: list[str]
    x: float
    start_y: float
    spacing: float = 20


class ArrangeGrid(ToolArguments):
    shape_ids: list[str]
    start_x: float
    start_y: float
    columns: int = Field(ge=1)
    spacing_x: float = 20
    spacing_y: float = 20


class CenterShape(ToolArguments):
    shape_id: str
    canvas_width: float = Field(1200, gt=0)
    canvas_height: float = Field(800, gt=0)


class DistributeHorizontally(ToolArguments):
    shape_ids: list[str]
    start_x: float
    end_x: float
    y: float


class DistributeVertically(ToolArguments):
    shape_ids: list[str]
    x: float
    start_y: float
    end_y: float


# ----- 기타 -----

class GetCanvasBounds(ToolArguments):
    pass


class ClearCanvas(ToolArguments):
    # 전체 삭제는 모델이 명시적으로 true를 보낸 경우에만 통과
    confirm: Literal[True]


class ToolSpec(BaseModel):
    name: str
    description: str
    category: str
    arguments: type[ToolArguments]

    def to_openai(self) -> dict:
        params = self.arguments.model_json_schema(by_alias=True)
        params.pop("title", None)
        params.setdefault("properties", {})
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": params},
        }


TOOL_SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(name="createRectangle", category="creation", arguments=CreateRectangle,
             description="Create a rectangle shape on the canvas"),
    ToolSpec(name="createCircle", category="creation", arguments=CreateCircle,
             description="Create a circle shape on the canvas (x, y is the center)"),
    ToolSpec(name="createText", category="creation", arguments=CreateText,
             description="Create a text element on the canvas"),
    ToolSpec(name="createMultipleShapes", category="creation", arguments=CreateMultipleShapes,
             description="Create multiple shapes at once; with count, the first shape is duplicated on a grid"),
    ToolSpec(name="moveShapeByDescription", category="manipulation", arguments=MoveShapeByDescription,
             description="Move a shape described by its type and/or color"),
    ToolSpec(name="resizeShapeByDescription", category="manipulation", arguments=ResizeShapeByDescription,
             description="Resize a shape described by its type and/or color"),
    ToolSpec(name="rotateShapes", category="manipulation", arguments=RotateShapes,
             description="Rotate shapes by degrees; an empty shapeIds list rotates the current selection"),
    ToolSpec(name="moveShape", category="manipulation", arguments=MoveShape,
             description="Move a shape to a new position using a known shapeId"),
    ToolSpec(name="resizeShape", category="manipulation", arguments=ResizeShape,
             description="Resize a rectangle (width/height) or circle (radius)"),
    ToolSpec(name="changeColor", category="manipulation", arguments=ChangeColor,
             description="Change the color of a shape"),
    ToolSpec(name="updateText", category="manipulation", arguments=UpdateText,
             description="Update the text content or font size of a text shape"),
    ToolSpec(name="deleteShape", category="manipulation", arguments=DeleteShape,
             description="Delete a shape from the canvas"),
    ToolSpec(name="deleteMultipleShapes", category="manipulation", arguments=DeleteMultipleShapes,
             description="Delete multiple shapes at once"),
    ToolSpec(name="getCanvasState", category="query", arguments=GetCanvasState,
             description="Get all shapes currently on the canvas with their properties"),
    ToolSpec(name="findShapesByType", category="query", arguments=FindShapesByType,
             description="Find all shapes of a specific type"),
    ToolSpec(name="findShapesByColor", category="query", arguments=FindShapesByColor,
             description="Find all shapes with a specific color"),
    ToolSpec(name="findShapesByText", category="query", arguments=FindShapesByText,
             description="Find text shapes containing specific text (case-insensitive)"),
    ToolSpec(name="arrangeHorizontal", category="layout", arguments=ArrangeHorizontal,
             description="Arrange shapes in a horizontal row; an empty shapeIds list arranges all shapes"),
    ToolSpec(name="arrangeVertical", category="layout", arguments=ArrangeVertical,
             description="Arrange shapes in a vertical column; an empty shapeIds list arranges all shapes"),
    ToolSpec(name="arrangeGrid", category="layout", arguments=ArrangeGrid,
             description="Arrange shapes in a grid with the given number of columns"),
    ToolSpec(name="centerShape", category="layout", arguments=CenterShape,
             description="Center a shape on the canvas"),
    ToolSpec(name="distributeHorizontally", category="layout", arguments=DistributeHorizontally,
             description="Distribute shapes evenly between startX and endX"),
    ToolSpec(name="distributeVertically", category="layout", arguments=DistributeVertically,
             description="Distribute shapes evenly between startY and endY"),
    ToolSpec(name="getCanvasBounds", category="utility", arguments=GetCanvasBounds,
             description="Get the current canvas dimensions"),
    ToolSpec(name="clearCanvas", category="utility", arguments=ClearCanvas,
             description="Delete all shapes from the canvas; confirm must be true"),
)

_SPECS_BY_NAME: dict[str, ToolSpec] = {spec.name: spec for spec in TOOL_SPECS}

# 프로세스 시작 시 한 번 만들어 두고 바꾸지 않음 (요청마다 그대로 전송)
TOOL_SCHEMAS: tuple[dict, ...] = tuple(spec.to_openai() for spec in TOOL_SPECS)


def tool_schemas() -> list[dict]:
    """모델에 보낼 tools 목록. 호출자가 수정해도 원본은 그대로 유지되도록 복사본 반환."""
    return json.loads(json.dumps(TOOL_SCHEMAS))


def tool_names() -> list[str]:
    return [spec.name for spec in TOOL_SPECS]


def tool_categories() -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for spec in TOOL_SPECS:
        out.setdefault(spec.category, []).append(spec.name)
    return out


class RawToolCall(BaseModel):
    """모델이 돌려준 그대로의 도구 호출. arguments는 보통 JSON 문자열이지만 검증 전이라 아무 값이나 올 수 있음."""
    id: str
    name: str
    arguments: Any = ""


class DecodedToolCall(BaseModel):
    """검증을 통과한 도구 호출. arguments는 도구 이름에 맞는 타입."""
    id: str
    name: str
    arguments: SerializeAsAny[ToolArguments]


class ToolDecodeError(ValueError):
    """도구 호출 하나를 해석할 수 없을 때. 어떤 호출이 문제인지 함께 보관."""

    def __init__(self, call: RawToolCall, cause: str):
        super().__init__(f"{call.name}({call.id}): {cause}")
        self.call = call
        self.cause = cause


def _describe_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors()[:5]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def decode_tool_call(call: RawToolCall) -> DecodedToolCall:
    """RawToolCall → DecodedToolCall. JSON 문법 오류·스키마 불일치·모르는 도구는 ToolDecodeError."""
    spec = _SPECS_BY_NAME.get(call.name)
    if spec is None:
        raise ToolDecodeError(call, f"unknown tool: {call.name!r}")
    if not isinstance(call.arguments, str):
        raise ToolDecodeError(call, f"arguments must be a JSON string, got {type(call.arguments).__name__}")
    raw = call.arguments.strip() or "{}"
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolDecodeError(call, f"arguments are not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ToolDecodeError(call, f"arguments must be a JSON object, got {type(payload).__name__}")
    try:
        args = spec.arguments.model_validate_json(raw)
    except ValidationError as e:
        raise ToolDecodeError(call, _describe_validation_error(e)) from e
    return DecodedToolCall(id=call.id, name=call.name, arguments=args)
