from __future__ import annotations

import logging

import pytest

from ragescript.ast_nodes import DataType, Variable
from ragescript.exceptions import InferenceError
from ragescript.lifter import Declarations, Function, Machine


def _decompile(function: Function) -> Function:
    return Machine([]).decompile_function(function)


def test_add_function_end_to_end(asm) -> None:
    asm.local_load(0).local_load(1).op("IADD").ret(1, num_args=2)
    inputs = Declarations([Variable("a", DataType.INT), Variable("b", DataType.INT)])

    function = _decompile(Function("add", asm.code, inputs=inputs))

    assert function.return_type is DataType.INT
    assert function.c_string() == "int add(int a, int b) {\n    return a + b;\n}"


def test_void_return(asm) -> None:
    function = _decompile(Function("noop", asm.ret(0).code))

    assert function.return_type is DataType.VOID
    assert function.c_string() == "void noop() {\n    return;\n}"


def test_single_value_return_of_constant_sum(asm) -> None:
    function = _decompile(Function("three", asm.push(1).push(2).op("IADD").ret(1).code))

    assert function.return_type is DataType.INT
    assert "    return 1 + 2;" in function.c_string().splitlines()


def test_float_arithmetic_types_return(asm) -> None:
    function = _decompile(Function("scale", asm.push(1.5).push(2.0).op("FMUL").ret(1).code))

    assert function.c_string() == "float scale() {\n    return 1.5f * 2.0f;\n}"


def test_underflow_renders_sentinel(asm, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        function = _decompile(Function("broken", asm.ret(1).code))

    assert "node stack underflow" in caplog.text
    assert "    return 0xBABE;" in function.c_string().splitlines()


def test_multiple_return_values_are_fatal(asm) -> None:
    asm.push(1).push(2).ret(2)

    with pytest.raises(InferenceError, match="2 return values"):
        _decompile(Function("pair", asm.code))


def test_conflicting_return_arity_keeps_first(asm, caplog) -> None:
    asm.local_load(0).jz(4).push(1).ret(1, num_args=1).ret(0, num_args=1)
    inputs = Declarations([Variable("flag")])

    with caplog.at_level(logging.WARNING):
        function = _decompile(Function("mixed", asm.code, inputs=inputs))

    assert "mixed returns both 1 and 0 values" in caplog.text
    assert function.return_type is DataType.INT
    assert function.c_string().splitlines()[-2] == "    return;"


def test_conflicting_return_types_keep_first(asm, caplog) -> None:
    asm.local_load(0).jz(4).push(1).ret(1, num_args=1)
    asm.local_load(0).push(2).op("ILT").ret(1, num_args=1)
    inputs = Declarations([Variable("x")])

    with caplog.at_level(logging.WARNING):
        function = _decompile(Function("clamp", asm.code, inputs=inputs))

    assert "clamp returns both int and bool, keeping int" in caplog.text
    assert function.c_string() == "\n".join(
        [
            "int clamp(var x) {",
            "    if (x) {",
            "        return 1;",
            "    }",
            "    return x < 2;",
            "}",
        ]
    )


def test_join_mismatch_is_logged_and_rendering_completes(asm, caplog) -> None:
    # The then-branch leaves an extra value on the stack before the join.
    asm.push(1).jz(4).push(5).jump(4).ret(0)

    with caplog.at_level(logging.WARNING):
        function = _decompile(Function("uneven", asm.code))
        text = function.c_string()

    assert "stack mismatch at join 0x4" in caplog.text
    assert text.splitlines()[-2] == "    return;"


def test_if_else_structure(asm) -> None:
    asm.local_load(0).jz(5)
    asm.push(1).local_store(1).jump(7)
    asm.push(2).local_store(1)
    asm.local_load(1).ret(1, num_args=1)
    function = Function("pick", asm.code, inputs=Declarations([Variable("flag")]))

    _decompile(function)

    assert function.c_string() == "\n".join(
        [
            "int pick(var flag) {",
            "    int local_1;",
            "",
            "    if (flag) {",
            "        local_1 = 1;",
            "    } else {",
            "        local_1 = 2;",
            "    }",
            "    return local_1;",
            "}",
        ]
    )


def test_loop_back_edge_renders_label_and_goto(asm) -> None:
    asm.push(0).local_store(0)
    asm.local_load(0).push(10).jz(10, kind="ILT_JZ")
    asm.local_load(0).push(1).op("IADD").local_store(0).jump(2)
    asm.local_load(0).ret(1)
    function = _decompile(Function("count", asm.code))

    assert function.c_string() == "\n".join(
        [
            "int count() {",
            "    int local_0;",
            "",
            "    local_0 = 0;",
            "label_2:",
            "    if (local_0 < 10) {",
            "        local_0 = local_0 + 1;",
            "        goto label_2;",
            "    }",
            "    return local_0;",
            "}",
        ]
    )


def test_rendering_is_deterministic(asm) -> None:
    asm.push(0).local_store(0)
    asm.local_load(0).push(10).jz(10, kind="ILT_JZ")
    asm.local_load(0).push(1).op("IADD").local_store(0).jump(2)
    asm.local_load(0).ret(1)
    function = _decompile(Function("count", asm.code))

    assert function.c_string() == function.c_string()


def test_unhandled_kind_becomes_comment(asm, caplog) -> None:
    asm.op("SWITCH").ret(0)

    with caplog.at_level(logging.WARNING):
        function = _decompile(Function("odd", asm.code))

    assert "unhandled instruction" in caplog.text
    assert "    // unhandled instruction 000000: SWITCH" in function.c_string().splitlines()


def test_statics_globals_and_unary(asm) -> None:
    asm.push(5).static_store(3)
    asm.local_load(0).op("INOT").local_store(1)
    asm.global_load(2).ret(1, num_args=1)
    function = Function("misc", asm.code, inputs=Declarations([Variable("flag")]))

    text = _decompile(function).c_string()

    assert "    static_3 = 5;" in text
    assert "    bool local_1;" in text
    assert "    local_1 = !flag;" in text
    assert "    return global_2;" in text
    assert text.startswith("var misc(var flag) {")


def test_unused_local_slots_are_not_declared(asm) -> None:
    asm.push(1).local_store(3).ret(0)

    text = _decompile(Function("sparse", asm.code)).c_string()

    assert "    int local_3;" in text
    assert "local_0" not in text


def test_dropped_native_result_becomes_statement(asm) -> None:
    asm.push(1).native(1, 1, name="GET_X", result_type="int").op("DROP").ret(0)

    text = _decompile(Function("poll", asm.code)).c_string()

    assert "    GET_X(1);" in text


def test_unknown_native_uses_hash_name(asm) -> None:
    asm.native(0, 1, native_hash=0xDEADBEEF).ret(1)

    function = _decompile(Function("hashy", asm.code))

    assert "    return native_0x00000000DEADBEEF();" in function.c_string()
    assert function.return_type is DataType.UNKNOWN


def test_script_split_and_call_resolution(asm) -> None:
    asm.enter(0, name="main").push(3).push(4).call(6)
    asm.native(1, 0, name="WAIT").ret(0)
    asm.enter(2, name="add").local_load(0).local_load(1).op("IADD").ret(1, num_args=2)

    script = Machine(asm.code).decompile()

    assert [fn.identifier for fn in script.functions] == ["main", "add"]
    assert script.function_at(6).identifier == "add"
    assert script.c_string() == "\n".join(
        [
            "// script",
            "",
            "void main() {",
            "    WAIT(add(3, 4));",
            "    return;",
            "}",
            "",
            "int add(var arg_0, var arg_1) {",
            "    return arg_0 + arg_1;",
            "}",
        ]
    )


def test_call_to_unknown_address_is_kept_as_comment(asm, caplog) -> None:
    asm.call(0x400).ret(0)

    with caplog.at_level(logging.WARNING):
        script = Machine(asm.code).decompile()

    assert "call to unknown function at 0x400" in caplog.text
    assert "    // call to unknown function at 0x400" in script.c_string()
    assert script.functions[0].identifier == "func_0"
