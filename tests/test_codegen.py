# =============================================================================
# test_codegen.py - Code Generator Tests
# =============================================================================
# Tests for CodeGenerator directly: collection of methods and the constant
# pool, link ordering, state reset between runs and IJVM framing.
# =============================================================================

import struct

import pytest
from ijvm_asm.assembler.codegen import IJVM_MAGIC, CodeGenerator
from ijvm_asm.assembler.parser import parse_source
from ijvm_asm.errors import AssemblerError, ErrorCollector, TooManyErrors


def generate(source: str, **kwargs) -> CodeGenerator:
    gen = CodeGenerator(**kwargs)
    gen.generate(parse_source(source, "test.jas"))
    return gen


SOURCE = """\
.constant
ONE 1
TWO 2
.end-constant
.main
    INVOKEVIRTUAL g
    HALT
.end-main
.method f(x)
    IRETURN
.end-method
.method g()
    INVOKEVIRTUAL f
    IRETURN
.end-method
"""


class TestCollection:
    """Pass 1 results."""

    def test_pool_order(self):
        gen = generate(SOURCE)
        assert [c.name for c in gen.constant_pool] == ["ONE", "TWO", "f", "g"]
        assert [c.index for c in gen.constant_pool] == [0, 1, 2, 3]

    def test_methods_in_declaration_order(self):
        gen = generate(SOURCE)
        assert [m.name for m in gen.methods] == ["main", "f", "g"]

    def test_calls_between_non_main_methods(self):
        gen = generate(SOURCE)
        text = gen.get_code()
        # main: B6 00 03 FF, f: header + AC, g: header + B6 00 02 AC
        assert text[:4] == bytes([0xB6, 0x00, 0x03, 0xFF])
        g_offset = gen.get_method_offsets()["g"]
        assert g_offset == 4 + 5
        assert text[g_offset + 4:] == bytes([0xB6, 0x00, 0x02, 0xAC])

    def test_linked_flag(self):
        assert generate(SOURCE).linked
        gen = generate(".main\nGOTO x\n.end-main\n", force=True)
        assert not gen.linked


class TestFraming:
    """IJVM file layout."""

    def test_header_fields(self):
        gen = generate(SOURCE)
        image = gen.build_ijvm()
        magic, pool_origin, pool_size = struct.unpack_from(">III", image, 0)
        assert magic == IJVM_MAGIC == 0x1DEADFAD
        assert pool_origin == 0
        assert pool_size == 16
        words = struct.unpack_from(">4I", image, 12)
        assert words == (1, 2, 4, 9)
        text_origin, text_size = struct.unpack_from(">II", image, 28)
        assert text_origin == 0
        assert text_size == len(gen.get_code())
        assert image[36:] == gen.get_code()

    def test_negative_constant(self):
        gen = generate(".constant\nNEG -2\n.end-constant\n.main\nLDC_W NEG\n.end-main\n")
        assert gen.build_ijvm()[12:16] == bytes([0xFF, 0xFF, 0xFF, 0xFE])


class TestReuse:
    """A generator can be reused for a fresh run."""

    def test_state_reset(self):
        gen = CodeGenerator()
        with pytest.raises(AssemblerError):
            gen.generate(parse_source(".main\nGOTO x\n.end-main\n"))
        assert gen.has_errors()

        gen.generate(parse_source(".main\nHALT\n.end-main\n"))
        assert not gen.has_errors()
        assert gen.get_code() == bytes([0xFF])
        assert len(gen.constant_pool) == 0

    def test_error_report_counts(self):
        gen = CodeGenerator()
        with pytest.raises(AssemblerError):
            gen.generate(parse_source(".main\nILOAD a\nILOAD b\n.end-main\n"))
        assert gen.errors.error_count() == 2
        assert "2 errors, 0 warnings" in gen.get_error_report()


class TestErrorLimit:
    """The error limit shortens the report but never the run under force."""

    def test_force_links_every_undefined_label(self):
        body = "".join(f"GOTO missing{i}\n" for i in range(150))
        gen = generate(".main\n" + body + "HALT\n.end-main\n", force=True)
        assert not gen.linked
        assert gen.errors.error_count() == 150
        assert gen.get_code() == bytes([0xA7, 0x00, 0x00]) * 150 + bytes([0xFF])

        report = gen.get_error_report()
        assert "missing99" in report
        assert "missing100" not in report
        assert "... 50 more errors not shown" in report
        assert "150 errors, 0 warnings" in report

    def test_pass1_stops_at_limit_without_force(self):
        body = "".join(f"ILOAD v{i}\n" for i in range(150))
        gen = CodeGenerator()
        with pytest.raises(TooManyErrors, match="stopping after 100 errors"):
            gen.generate(parse_source(".main\n" + body + ".end-main\n"))
        assert gen.errors.error_count() == 100

    def test_pass1_keeps_going_under_force(self):
        body = "".join(f"ILOAD v{i}\n" for i in range(150))
        gen = generate(".main\n" + body + "HALT\n.end-main\n", force=True)
        assert gen.errors.error_count() == 150
        assert gen.get_code()[-1] == 0xFF

    def test_collector_stop(self):
        errors = ErrorCollector(max_errors=2)
        errors.add(AssemblerError("one"), stop=True)
        errors.add(AssemblerError("two"))
        assert errors.limit_reached()
        with pytest.raises(TooManyErrors):
            errors.add(AssemblerError("three"), stop=True)
        assert errors.error_count() == 3
