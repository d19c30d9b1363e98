# =============================================================================
# test_parser.py - Parser Unit Tests
# =============================================================================
# Tests for the JAS parser: block structure, statements and syntax errors.
# =============================================================================

import pytest
from ijvm_asm.assembler.parser import (
    ConstantDef,
    Instruction,
    LabelDef,
    MethodDecl,
    MethodEnd,
    VarDecl,
    parse_source,
)
from ijvm_asm.errors import AssemblySyntaxError


PROGRAM = """\
.constant
OBJREF 0xCAFE
.end-constant

.main
.var
a b
.end-var
start: BIPUSH 1
    GOTO start
.end-main

.method add( x , y )   // raw header
    ILOAD x
    iinc x, 1
    IRETURN
.end-method
"""


# =============================================================================
# Statement Structure
# =============================================================================

class TestStatements:
    """A complete program parses into the expected statement list."""

    def test_statement_sequence(self):
        statements = parse_source(PROGRAM)
        assert [type(s) for s in statements] == [
            ConstantDef,
            MethodDecl, VarDecl, VarDecl, LabelDef, Instruction, Instruction, MethodEnd,
            MethodDecl, Instruction, Instruction, Instruction, MethodEnd,
        ]

    def test_constant(self):
        const = parse_source(PROGRAM)[0]
        assert const.name == "OBJREF"
        assert const.value == 0xCAFE
        assert const.location.line == 2

    def test_main_declaration(self):
        decl = parse_source(PROGRAM)[1]
        assert decl.is_main
        assert decl.header == "main"

    def test_variables_on_one_line(self):
        statements = parse_source(PROGRAM)
        assert [s.name for s in statements if isinstance(s, VarDecl)] == ["a", "b"]

    def test_label_shares_line_with_instruction(self):
        statements = parse_source(PROGRAM)
        label, inst = statements[4], statements[5]
        assert label.name == "start"
        assert inst.mnemonic == "BIPUSH"
        assert label.location.line == inst.location.line == 9

    def test_method_header_kept_raw(self):
        decl = parse_source(PROGRAM)[8]
        assert not decl.is_main
        assert decl.header == "add( x , y )"

    def test_mnemonic_uppercased_and_commas_skipped(self):
        iinc = parse_source(PROGRAM)[10]
        assert iinc.mnemonic == "IINC"
        assert [t.value for t in iinc.operands] == ["x", 1]

    def test_end_directives(self):
        ends = [s for s in parse_source(PROGRAM) if isinstance(s, MethodEnd)]
        assert [e.directive for e in ends] == [".end-main", ".end-method"]

    def test_label_on_its_own_line(self):
        statements = parse_source(".main\nend:\n    HALT\n.end-main\n")
        assert isinstance(statements[1], LabelDef)
        assert isinstance(statements[2], Instruction)

    def test_directives_are_case_insensitive(self):
        statements = parse_source(".MAIN\nHALT\n.End-Main\n")
        assert isinstance(statements[-1], MethodEnd)


# =============================================================================
# Structural Errors
# =============================================================================

class TestSyntaxErrors:
    """Malformed programs raise AssemblySyntaxError with a location."""

    def test_instruction_outside_method(self):
        with pytest.raises(AssemblySyntaxError, match="expected .constant, .main or .method"):
            parse_source("BIPUSH 1\n")

    def test_unterminated_main(self):
        with pytest.raises(AssemblySyntaxError, match="unterminated .main") as exc_info:
            parse_source("\n.main\nBIPUSH 1\n")
        assert exc_info.value.location.line == 2

    def test_unterminated_constant(self):
        with pytest.raises(AssemblySyntaxError, match="unterminated .constant"):
            parse_source(".constant\nX 1\n")

    def test_mismatched_end(self):
        with pytest.raises(AssemblySyntaxError, match="expected .end-main"):
            parse_source(".main\nHALT\n.end-method\n")

    def test_method_end_inside_var_block(self):
        with pytest.raises(AssemblySyntaxError, match="missing .end-var before .end-main") as exc_info:
            parse_source(".main\n.var\nx\n.end-main\n")
        assert exc_info.value.location.line == 4

    def test_unterminated_var(self):
        with pytest.raises(AssemblySyntaxError, match=r"unterminated .var block \(missing .end-var\)"):
            parse_source(".method f()\n.var\nx\n")

    def test_var_after_instruction(self):
        with pytest.raises(AssemblySyntaxError, match="before the first instruction"):
            parse_source(".main\nNOP\n.var\nx\n.end-var\n.end-main\n")

    def test_second_var_block(self):
        with pytest.raises(AssemblySyntaxError):
            parse_source(".main\n.var\nx\n.end-var\n.var\ny\n.end-var\n.end-main\n")

    def test_method_without_header(self):
        with pytest.raises(AssemblySyntaxError, match="missing method declaration"):
            parse_source(".method\n.end-method\n")

    def test_nested_method(self):
        with pytest.raises(AssemblySyntaxError, match="inside another block"):
            parse_source(".main\n.main\n")

    def test_unknown_directive(self):
        with pytest.raises(AssemblySyntaxError, match="unknown directive '.foo'"):
            parse_source(".foo\n")

    def test_constant_without_value(self):
        with pytest.raises(AssemblySyntaxError, match="expected value for constant 'X'"):
            parse_source(".constant\nX\n.end-constant\n")

    def test_constant_inside_method(self):
        with pytest.raises(AssemblySyntaxError, match="outside methods"):
            parse_source(".main\n.constant\n")

    def test_error_quotes_source_line(self):
        with pytest.raises(AssemblySyntaxError) as exc_info:
            parse_source(".main\n    BIPUSH ,\n.end-main\n")
        assert "BIPUSH ," in str(exc_info.value)
