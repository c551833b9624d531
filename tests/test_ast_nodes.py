from __future__ import annotations

import logging

import pytest

from ragescript.ast_nodes import (
    AssignStmt,
    BinaryExpr,
    Call,
    CallStmt,
    Comment,
    DataType,
    Immediate,
    ReturnStmt,
    UnaryExpr,
    Variable,
    VariableRef,
    render_statements,
)


class _FlatContext:
    """Render context for statements that never refer to blocks."""

    def render_region(self, address, indent, stop):
        raise AssertionError("no regions expected")

    def is_rendered(self, address):
        return False

    def label_for(self, address):
        return f"label_{address:X}"


@pytest.mark.parametrize(
    ("value", "text", "data_type"),
    [
        (3, "3", DataType.INT),
        (1.5, "1.5f", DataType.FLOAT),
        (True, "true", DataType.BOOL),
        ("hello", '"hello"', DataType.STRING),
    ],
)
def test_immediate_rendering_and_type(value, text, data_type) -> None:
    node = Immediate(value)

    assert node.render() == text
    assert node.data_type is data_type


def test_nested_binary_operands_are_parenthesised() -> None:
    a = VariableRef(Variable("a", DataType.INT))
    inner = BinaryExpr(a, "+", Immediate(1), DataType.INT)

    expr = BinaryExpr(inner, "*", UnaryExpr("-", Immediate(2), DataType.INT), DataType.INT)

    assert expr.render() == "(a + 1) * -2"


def test_statements_render_with_indent_and_terminators() -> None:
    x = Variable("x", DataType.INT)
    statements = [
        AssignStmt(VariableRef(x), Immediate(4)),
        CallStmt(Call("WAIT", [Immediate(0)])),
        Comment("unhandled"),
        ReturnStmt([VariableRef(x)]),
        ReturnStmt(),
    ]

    lines = render_statements(statements, _FlatContext(), 1)

    assert lines == [
        "    x = 4;",
        "    WAIT(0);",
        "    // unhandled",
        "    return x;",
        "    return;",
    ]


def test_variable_type_inference_keeps_first_type(caplog) -> None:
    var = Variable("v")

    assert var.infer_type(DataType.UNKNOWN) is False
    assert var.infer_type(DataType.INT) is True
    with caplog.at_level(logging.DEBUG):
        assert var.infer_type(DataType.FLOAT) is False

    assert var.data_type is DataType.INT
    assert var.c_string() == "int v"


def test_reference_sees_later_inference() -> None:
    var = Variable("late")
    ref = VariableRef(var)

    var.infer_type(DataType.FLOAT)

    assert ref.data_type is DataType.FLOAT


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        (None, DataType.UNKNOWN),
        ("int", DataType.INT),
        ("FLOAT", DataType.FLOAT),
        ("const char*", DataType.STRING),
        ("Vehicle", DataType.INT),
        ("Vector3", DataType.UNKNOWN),
    ],
)
def test_data_type_from_native_result_name(name, expected) -> None:
    assert DataType.from_name(name) is expected
