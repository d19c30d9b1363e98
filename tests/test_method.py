# =============================================================================
# test_method.py - Method Model and Linker Tests
# =============================================================================
# Tests for method header parsing, variable tables, byte offsets, the two
# link passes and per-method code generation.
# =============================================================================

import logging
from io import BytesIO

import pytest
from ijvm_asm.assembler.constants import ConstantPool
from ijvm_asm.assembler.method import (
    LINK_PTR,
    Instruction,
    Method,
    parse_method_header,
)
from ijvm_asm.assembler.opcodes import OpcodeConfig, OpcodeInfo
from ijvm_asm.errors import (
    DuplicateSymbolError,
    ErrorCollector,
    InternalError,
    MethodDeclarationError,
    OperandError,
    UndefinedSymbolError,
)


@pytest.fixture
def config():
    return OpcodeConfig.default()


def op(config, mnemonic, *params, **kwargs):
    """Build an instruction from the default instruction set."""
    return Instruction(config.get(mnemonic), list(params), **kwargs)


def generate(method) -> bytes:
    out = BytesIO()
    method.generate(out)
    return out.getvalue()


# =============================================================================
# Header Parsing
# =============================================================================

class TestHeaderParsing:
    """Splitting 'name(params)' headers."""

    def test_main(self):
        assert parse_method_header("main") == ("main", [])

    def test_parameters_in_order(self):
        assert parse_method_header("add(a, b)") == ("add", ["a", "b"])

    def test_whitespace_trimmed(self):
        assert parse_method_header("  f ( x ,y ) ") == ("f", ["x", "y"])

    def test_empty_parameter_list(self):
        assert parse_method_header("f()") == ("f", [])
        assert parse_method_header("f(   )") == ("f", [])

    @pytest.mark.parametrize("header,message", [
        ("add a, b", "missing opening parenthesis"),
        ("f(a, b", "missing closing parenthesis"),
        ("f(a) extra", "characters remaining after parameter list"),
        ("(a)", "missing method name"),
        ("f(a,,b)", "empty parameter name"),
    ])
    def test_malformed(self, header, message):
        with pytest.raises(MethodDeclarationError, match=message):
            parse_method_header(header)

    def test_trailing_whitespace_after_paren_allowed(self):
        assert parse_method_header("f(a)   ") == ("f", ["a"])


# =============================================================================
# Method Construction and Variables
# =============================================================================

class TestMethodConstruction:
    """Variable tables and starting offsets."""

    def test_main_has_no_link_slot(self):
        main = Method("main")
        assert main.is_main
        assert main.variables == []
        assert main.num_params == 0
        assert main.start_byte == 0
        assert main.current_byte == 0

    def test_link_pointer_prefix(self):
        method = Method("f(a, b)")
        assert method.name == "f"
        assert method.variables == [LINK_PTR, "a", "b"]
        assert method.num_params == 3
        assert method.start_byte == 4

    def test_var_index(self):
        method = Method("f(a, b)")
        assert method.var_index("LINK PTR") == 0
        assert method.var_index("b") == 2
        assert method.var_index("missing") is None

    def test_locals_follow_parameters(self):
        method = Method("f(a)")
        assert method.add_variable("tmp") == 2
        assert method.parameters == [LINK_PTR, "a"]
        assert method.locals == ["tmp"]
        assert method.num_locals == 1

    def test_duplicate_names_use_first_match(self):
        method = Method("f(a, a)")
        assert method.var_index("a") == 1

    def test_header_bytes(self):
        method = Method("f(a, b)")
        method.add_variable("x")
        assert method.header_bytes() == b"\x00\x03\x00\x01"

    def test_malformed_header_aborts(self):
        with pytest.raises(MethodDeclarationError):
            Method("f(a, b")

    def test_main_name_reserved(self):
        with pytest.raises(MethodDeclarationError, match="reserved"):
            Method("main()")


# =============================================================================
# Byte Offsets
# =============================================================================

class TestOffsets:
    """Instructions and labels are stamped when appended."""

    def test_offsets_accumulate(self, config):
        method = Method("main")
        first = op(config, "BIPUSH", 5)
        second = op(config, "GOTO", 0)
        method.append_instruction(first)
        method.append_instruction(second)
        assert first.byte_offset == 0
        assert second.byte_offset == 2
        assert method.current_byte == 5

    def test_non_main_starts_after_header(self, config):
        method = Method("f()")
        inst = op(config, "NOP")
        method.append_instruction(inst)
        assert inst.byte_offset == 4
        assert method.size == 5

    def test_label_takes_current_offset(self, config):
        method = Method("main")
        method.append_instruction(op(config, "IINC", 1, 1))
        label = method.add_label("here", line=3)
        assert label.byte_offset == 3
        assert method.find_label("here") is label

    def test_wide_instruction_size(self, config):
        method = Method("main")
        method.append_instruction(op(config, "ILOAD", 300, wide=True))
        assert method.current_byte == 3

    def test_param_count_mismatch(self, config):
        with pytest.raises(InternalError):
            op(config, "BIPUSH", 1, 2)


# =============================================================================
# Label Linking
# =============================================================================

class TestLinkLabels:
    """Branch displacement resolution."""

    def build_forward(self, config):
        # BIPUSH 5, GOTO L, BIPUSH 9, L: HALT
        method = Method("main")
        method.append_instruction(op(config, "BIPUSH", 5))
        goto = op(config, "GOTO", symbol="L", link_label=True, line=2)
        method.append_instruction(goto)
        method.append_instruction(op(config, "BIPUSH", 9))
        method.add_label("L", line=4)
        method.append_instruction(op(config, "HALT"))
        return method, goto

    def test_forward_displacement(self, config):
        method, goto = self.build_forward(config)
        assert goto.byte_offset == 2
        assert method.find_label("L").byte_offset == 7
        assert method.link_labels()
        assert goto.params == [5]

    def test_forward_generation(self, config):
        method, _ = self.build_forward(config)
        method.link_labels()
        assert generate(method) == bytes([0x10, 0x05, 0xA7, 0x00, 0x05, 0x10, 0x09, 0xFF])

    def test_backward_displacement_wraps(self, config):
        method = Method("main")
        method.add_label("top")
        method.append_instruction(op(config, "BIPUSH", 1))
        goto = op(config, "GOTO", symbol="top", link_label=True)
        method.append_instruction(goto)
        assert method.link_labels()
        assert goto.params == [-2]
        assert generate(method) == bytes([0x10, 0x01, 0xA7, 0xFF, 0xFE])

    def test_self_loop(self, config):
        method = Method("main")
        method.add_label("spin")
        goto = op(config, "GOTO", symbol="spin", link_label=True)
        method.append_instruction(goto)
        method.link_labels()
        assert goto.params == [0]

    def test_labels_in_non_main_method(self, config):
        method = Method("f()")
        method.add_label("start")
        method.append_instruction(op(config, "NOP"))
        goto = op(config, "IFEQ", symbol="start", link_label=True)
        method.append_instruction(goto)
        method.link_labels()
        assert goto.params == [-1]

    def test_undefined_label_reported_others_resolved(self, config, caplog):
        method = Method("main")
        bad = op(config, "GOTO", symbol="nowhere", link_label=True, line=3)
        good = op(config, "GOTO", symbol="end", link_label=True, line=4)
        method.append_instruction(bad)
        method.append_instruction(good)
        method.add_label("end")

        errors = ErrorCollector()
        with caplog.at_level(logging.ERROR):
            assert method.link_labels(errors) is False

        assert bad.params == [0]
        assert good.params == [3]
        assert "[.main] Undefined label `nowhere` at line 3" in caplog.text

        assert errors.error_count() == 1
        error = errors.errors[0]
        assert isinstance(error, UndefinedSymbolError)
        assert error.symbol == "nowhere"
        assert error.kind == "label"
        assert error.location.line == 3

    def test_every_undefined_label_collected(self, config, caplog):
        method = Method("main")
        for i in range(120):
            method.append_instruction(op(config, "GOTO", symbol=f"x{i}", link_label=True, line=i + 2))

        errors = ErrorCollector()
        with caplog.at_level(logging.ERROR):
            assert method.link_labels(errors) is False

        assert errors.error_count() == 120
        assert errors.errors[-1].symbol == "x119"
        assert "Undefined label `x119` at line 121" in caplog.text
        assert all(inst.params == [0] for inst in method.instructions)

    def test_similar_label_hint(self, config):
        method = Method("main")
        method.add_label("loop")
        method.append_instruction(op(config, "GOTO", symbol="lop", link_label=True))
        errors = ErrorCollector()
        method.link_labels(errors)
        assert "did you mean 'loop'?" in str(errors.errors[0])

    def test_duplicate_label_first_definition_wins(self, config):
        method = Method("main")
        method.add_label("L")
        method.append_instruction(op(config, "BIPUSH", 1))
        method.add_label("L")
        goto = op(config, "GOTO", symbol="L", link_label=True)
        method.append_instruction(goto)
        method.link_labels()
        assert goto.params == [-2]


# =============================================================================
# Method Linking
# =============================================================================

class TestLinkMethods:
    """Call target resolution through the constant pool."""

    def test_resolves_pool_index(self, config):
        pool = ConstantPool()
        pool.add_constant("OBJREF", 0xCAFE)
        pool.add_method(Method("f()"))

        caller = Method("main")
        call = op(config, "INVOKEVIRTUAL", symbol="f", link_method=True)
        caller.append_instruction(call)

        assert caller.link_methods(pool)
        assert call.params == [1]
        assert generate(caller) == bytes([0xB6, 0x00, 0x01])

    def test_undefined_method_does_not_stop_others(self, config, caplog):
        pool = ConstantPool()
        pool.add_constant("OBJREF", 0)
        pool.add_method(Method("f()"))

        caller = Method("main")
        missing = op(config, "INVOKEVIRTUAL", symbol="g", link_method=True, line=7)
        found = op(config, "INVOKEVIRTUAL", symbol="f", link_method=True, line=8)
        caller.append_instruction(missing)
        caller.append_instruction(found)

        errors = ErrorCollector()
        with caplog.at_level(logging.ERROR):
            assert caller.link_methods(pool, errors) is False
        assert missing.params == [0]
        assert found.params == [1]
        assert errors.errors[0].kind == "method"
        assert "Undefined method `g` at line 7" in caplog.text

    def test_constant_is_not_a_method(self, config):
        pool = ConstantPool()
        pool.add_constant("X", 1)
        caller = Method("main")
        caller.append_instruction(op(config, "INVOKEVIRTUAL", symbol="X", link_method=True))
        assert caller.link_methods(pool) is False

    def test_labels_ignored_by_method_pass(self, config):
        method = Method("main")
        goto = op(config, "GOTO", symbol="missing", link_label=True)
        method.append_instruction(goto)
        assert method.link_methods(ConstantPool())


# =============================================================================
# Code Generation
# =============================================================================

class TestGenerate:
    """Per-instruction encoding."""

    def test_operand_encodings(self, config):
        method = Method("main")
        method.append_instruction(op(config, "BIPUSH", -3))
        method.append_instruction(op(config, "IINC", 2, -1))
        method.append_instruction(op(config, "LDC_W", 0x102))
        assert generate(method) == bytes([0x10, 0xFD, 0x84, 0x02, 0xFF, 0x13, 0x01, 0x02])

    def test_wide_var_is_two_bytes(self, config):
        method = Method("main")
        method.append_instruction(op(config, "WIDE"))
        method.append_instruction(op(config, "ISTORE", 0x1234, wide=True))
        assert generate(method) == bytes([0xC4, 0x36, 0x12, 0x34])

    def test_unknown_operand_kind_is_internal_error(self):
        method = Method("main")
        method.instructions.append(Instruction(OpcodeInfo("BAD", 0x01, ("weird",))))
        with pytest.raises(InternalError):
            generate(method)


# =============================================================================
# Constant Pool
# =============================================================================

class TestConstantPool:
    """Ordered pool with name lookup."""

    def test_indices_follow_declaration_order(self):
        pool = ConstantPool()
        a = pool.add_constant("A", 1)
        f = pool.add_method(Method("f()"))
        assert (a.index, f.index) == (0, 1)
        assert pool.find("A") is a
        assert pool.find_method("f") is f
        assert pool.find_method("A") is None
        assert pool.find("missing") is None
        assert len(pool) == 2

    def test_duplicate_name(self):
        pool = ConstantPool()
        pool.add_constant("A", 1)
        with pytest.raises(DuplicateSymbolError):
            pool.add_method(Method("A()"))

    def test_words_are_unsigned(self):
        pool = ConstantPool()
        pool.add_constant("NEG", -1)
        assert pool.words() == [0xFFFFFFFF]

    def test_value_range(self):
        pool = ConstantPool()
        with pytest.raises(OperandError, match="32 bits"):
            pool.add_constant("BIG", 1 << 32)
