"""
도구 카탈로그와 도구 호출 인자 검증.
"""
import json

import pytest

from gateway.tools import (
    ClearCanvas,
    CreateMultipleShapes,
    CreateText,
    RawToolCall,
    ToolDecodeError,
    decode_tool_call,
    tool_categories,
    tool_names,
    tool_schemas,
)


def _call(name: str, arguments) -> RawToolCall:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return RawToolCall(id="call_1", name=name, arguments=arguments)


def test_schemas_are_openai_function_tools():
    schemas = tool_schemas()
    names = [s["function"]["name"] for s in schemas]
    assert names == tool_names()
    assert len(set(names)) == len(names)
    for s in schemas:
        assert s["type"] == "function"
        assert s["function"]["description"]
        assert s["function"]["parameters"]["type"] == "object"
        assert "properties" in s["function"]["parameters"]


def test_schema_uses_camel_case_and_required_fields():
    by_name = {s["function"]["name"]: s["function"]["parameters"] for s in tool_schemas()}
    rect = by_name["createRectangle"]
    assert set(rect["required"]) == {"x", "y", "width", "height", "color"}
    text = by_name["createText"]
    assert "fontSize" in text["properties"]
    assert set(text["required"]) == {"x", "y", "text"}
    assert "shapeIds" in by_name["arrangeGrid"]["properties"]


def test_tool_schemas_returns_copy():
    schemas = tool_schemas()
    schemas[0]["function"]["name"] = "hacked"
    assert tool_schemas()[0]["function"]["name"] == "createRectangle"


def test_categories_cover_every_tool():
    cats = tool_categories()
    assert set(cats) == {"creation", "manipulation", "query", "layout", "utility"}
    flat = [name for names in cats.values() for name in names]
    assert sorted(flat) == sorted(tool_names())


def test_decode_valid_call_with_defaults():
    decoded = decode_tool_call(_call("createText", {"x": 10, "y": 20, "text": "Hello"}))
    assert decoded.name == "createText"
    assert isinstance(decoded.arguments, CreateText)
    assert decoded.arguments.font_size == 24
    assert decoded.arguments.color == "#000000"


def test_decode_nested_shapes():
    decoded = decode_tool_call(_call("createMultipleShapes", {
        "shapes": [{"type": "rectangle", "x": 0, "y": 0, "width": 50, "height": 50, "color": "#0000FF"}],
        "count": 9,
        "spacingX": 10,
    }))
    assert isinstance(decoded.arguments, CreateMultipleShapes)
    assert decoded.arguments.shapes[0].type == "rectangle"
    assert decoded.arguments.spacing_x == 10


def test_decode_serializes_with_camel_case():
    decoded = decode_tool_call(_call("moveShape", {"shapeId": "s1", "x": 1.5, "y": 2}))
    dumped = decoded.model_dump(by_alias=True)
    assert dumped["arguments"] == {"shapeId": "s1", "x": 1.5, "y": 2.0}


def test_empty_arguments_mean_empty_object():
    decoded = decode_tool_call(_call("getCanvasState", ""))
    assert decoded.name == "getCanvasState"


@pytest.mark.parametrize(
    "name,arguments,fragment",
    [
        ("createCircle", '{"x": 1, "y": 2, "radius": 5', "not valid JSON"),
        ("createCircle", "[1, 2, 3]", "JSON object"),
        ("launchRocket", {"x": 1}, "unknown tool"),
        ("createCircle", {"x": 1, "y": 2, "radius": 5}, "color"),
        ("createCircle", {"x": "10", "y": 2, "radius": 5, "color": "#fff"}, "x"),
        ("createCircle", {"x": 1, "y": 2, "radius": -5, "color": "#fff"}, "radius"),
        ("moveShape", {"shapeId": "s1", "x": 1, "y": 2, "z": 3}, "z"),
        ("findShapesByType", {"type": "triangle"}, "type"),
    ],
)
def test_decode_rejects_malformed_arguments(name, arguments, fragment):
    """JSON 오류·모르는 도구·필수값 누락·문자열 숫자·음수 크기·모르는 키·잘못된 enum은 모두 거부"""
    call = _call(name, arguments)
    with pytest.raises(ToolDecodeError) as exc:
        decode_tool_call(call)
    assert exc.value.call == call
    assert fragment in exc.value.cause


@pytest.mark.parametrize(
    "shape,missing",
    [
        ({"type": "rectangle", "x": 0, "y": 0, "height": 50, "color": "#000"}, "width"),
        ({"type": "circle", "x": 0, "y": 0, "color": "#000"}, "radius"),
        ({"type": "text", "x": 0, "y": 0, "color": "#000"}, "text"),
    ],
)
def test_multiple_shapes_need_size_for_their_type(shape, missing):
    """사각형은 width·height, 원은 radius, 텍스트는 text가 없으면 거부"""
    with pytest.raises(ToolDecodeError) as exc:
        decode_tool_call(_call("createMultipleShapes", {"shapes": [shape]}))
    assert missing in exc.value.cause


def test_non_string_arguments_are_rejected():
    """arguments가 JSON 문자열이 아니면 어떤 값이든 ToolDecodeError"""
    for value in ({"x": 1}, [1], 3, None):
        call = RawToolCall(id="call_1", name="createCircle", arguments=value)
        with pytest.raises(ToolDecodeError) as exc:
            decode_tool_call(call)
        assert "JSON string" in exc.value.cause


def test_clear_canvas_requires_confirm_true():
    assert isinstance(decode_tool_call(_call("clearCanvas", {"confirm": True})).arguments, ClearCanvas)
    with pytest.raises(ToolDecodeError):
        decode_tool_call(_call("clearCanvas", {"confirm": False}))
