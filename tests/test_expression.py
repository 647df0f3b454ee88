"""Tests for the expression language: lexer, parser and evaluator."""

import math
import re

import pytest

from scopecalc._errors import EvaluationError, ExpressionSyntaxError
from scopecalc._expr import (
    MAX_CALL_DEPTH,
    Binary,
    Conditional,
    Literal,
    ModuleCall,
    Name,
    TokenKind,
    Unary,
    evaluate,
    is_truthy,
    normalize_number,
    parse_expression,
    parse_function_body,
    to_display_string,
    tokenize,
)
from scopecalc._modules import compile_module


def _eval(text: str, **names: object) -> object:
    return evaluate(parse_expression(text), names)


class TestTokenize:
    """Tests for the tokenizer."""

    def test_numbers(self) -> None:
        """Should read integer, decimal and exponent literals."""
        tokens = tokenize("12 1.5 .5 1e3 2E-2")
        assert [t.value for t in tokens[:-1]] == [12, 1.5, 0.5, 1000.0, 0.02]
        assert tokens[-1].kind == TokenKind.END

    def test_longest_operator_wins(self) -> None:
        """Should prefer the longest operator."""
        tokens = tokenize("a === b ** c")
        assert [t.text for t in tokens if t.kind == TokenKind.OPERATOR] == ["===", "**"]

    def test_string_escapes(self) -> None:
        """Should decode escapes in strings."""
        (token, _end) = tokenize(r"'it\'s\n'")
        assert token.kind == TokenKind.STRING
        assert token.value == "it's\n"

    def test_double_quoted_string(self) -> None:
        """Should read double quoted strings."""
        assert tokenize('"a b"')[0].value == "a b"

    def test_unterminated_string(self) -> None:
        """Should reject an unterminated string."""
        with pytest.raises(ExpressionSyntaxError, match="Unterminated string"):
            tokenize("'abc")

    def test_unexpected_character(self) -> None:
        """Should reject an unknown character with its position."""
        with pytest.raises(ExpressionSyntaxError, match="Unexpected character '#'") as exc_info:
            tokenize("1 # 2")
        assert exc_info.value.position == 2

    def test_number_followed_by_letter(self) -> None:
        """Should reject a number followed by a letter."""
        with pytest.raises(ExpressionSyntaxError, match="Invalid number literal"):
            tokenize("2x")

    def test_large_integer_literal_is_a_float(self) -> None:
        """Should read integers beyond 2 ** 53 as floats."""
        assert tokenize("9007199254740993")[0].value == 9007199254740992.0
        assert isinstance(tokenize("1" + "0" * 5000)[0].value, float)
        assert tokenize("9007199254740992")[0].value == 2**53


class TestParseExpression:
    """Tests for the parser."""

    def test_precedence(self) -> None:
        """Should bind multiplication tighter than addition."""
        assert parse_expression("1 + 2 * 3") == Binary("+", Literal(1), Binary("*", Literal(2), Literal(3)))

    def test_left_associative(self) -> None:
        """Should group subtraction to the left."""
        assert parse_expression("8 - 3 - 2") == Binary("-", Binary("-", Literal(8), Literal(3)), Literal(2))

    def test_power_is_right_associative(self) -> None:
        """Should group powers to the right."""
        assert parse_expression("2 ** 3 ** 2") == Binary("**", Literal(2), Binary("**", Literal(3), Literal(2)))

    def test_unary_minus_binds_looser_than_power(self) -> None:
        """Should apply unary minus after the power."""
        assert parse_expression("-2 ** 2") == Unary("-", Binary("**", Literal(2), Literal(2)))

    def test_conditional(self) -> None:
        """Should parse a conditional expression."""
        assert parse_expression("a ? 1 : 2") == Conditional(Name("a"), Literal(1), Literal(2))

    def test_keyword_literals(self) -> None:
        """Should read true, null and undefined as literals."""
        assert parse_expression("true") == Literal(True)
        assert parse_expression("null") == Literal(None)
        assert parse_expression("undefined") == Literal(None)

    def test_module_call(self) -> None:
        """Should parse a module call with arguments."""
        assert parse_expression("@geo.area(w, 2)") == ModuleCall("geo", "area", (Name("w"), Literal(2)))

    def test_module_call_without_arguments(self) -> None:
        """Should parse a module call without arguments."""
        assert parse_expression("@m.pi()") == ModuleCall("m", "pi", ())

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("", "Empty expression"),
            ("1 +", "Unexpected end of expression"),
            ("(1 + 2", "Expected ')'"),
            ("1 2", "Unexpected '2'"),
            ("a ? 1", "Expected ':'"),
            ("@m(1)", "Expected '.'"),
            ("@.f(1)", "Expected module name"),
            ("return 1", "Unexpected keyword 'return'"),
        ],
    )
    def test_syntax_errors(self, text: str, message: str) -> None:
        """Should describe each syntax error."""
        with pytest.raises(ExpressionSyntaxError, match=re.escape(message)):
            parse_expression(text)

    def test_deep_nesting_is_a_syntax_error(self) -> None:
        """Should turn runaway nesting into a syntax error."""
        with pytest.raises(ExpressionSyntaxError, match="nested too deeply"):
            parse_expression("(" * 5000 + "1" + ")" * 5000)


class TestParseFunctionBody:
    """Tests for parse_function_body."""

    def test_return_and_semicolon(self) -> None:
        """Should accept `return` and a trailing semicolon."""
        assert parse_function_body("return a + b;") == Binary("+", Name("a"), Name("b"))

    def test_bare_expression(self) -> None:
        """Should accept a body without `return`."""
        assert parse_function_body("a * 2") == Binary("*", Name("a"), Literal(2))

    def test_return_prefix_of_a_name_is_kept(self) -> None:
        """Should not strip `return` from a longer name."""
        assert parse_function_body("returned") == Name("returned")

    def test_empty_body(self) -> None:
        """Should reject a body without an expression."""
        with pytest.raises(ExpressionSyntaxError, match="no return expression"):
            parse_function_body("return;")


class TestArithmetic:
    """Tests for arithmetic evaluation."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("1 + 2 * 3", 7),
            ("(1 + 2) * 3", 9),
            ("6 / 2", 3),
            ("7 / 2", 3.5),
            ("7 % 3", 1),
            ("-7 % 3", -1),
            ("7 % -3", 1),
            ("5.5 % 2", 1.5),
            ("2 ** 10", 1024),
            ("2 ** -1", 0.5),
            ("2 ** 3 ** 2", 512),
            ("-2 ** 2", -4),
            ("+3", 3),
            ("0.5 + 0.5", 1),
        ],
    )
    def test_values(self, text: str, expected: object) -> None:
        """Should compute arithmetic results."""
        assert _eval(text) == expected

    def test_integral_results_are_ints(self) -> None:
        """Should return ints for integral results."""
        result = _eval("6 / 2")
        assert isinstance(result, int)

    def test_names(self) -> None:
        """Should look names up in the given mapping."""
        assert _eval("a * b + 1", a=2, b=3) == 7

    @pytest.mark.parametrize("text", ["1 / 0", "1 % 0", "0 ** -1", "1.5 / 0.0"])
    def test_division_by_zero(self, text: str) -> None:
        """Should reject division by zero."""
        with pytest.raises(EvaluationError, match="Division by zero"):
            _eval(text)

    def test_overflow(self) -> None:
        """Should report overflow of huge powers."""
        with pytest.raises(EvaluationError, match="overflow"):
            _eval("10 ** 5000")

    @pytest.mark.parametrize("text", ["10 ** 400", "1e300 * 1e300", "2 ** 53 ** 2"])
    def test_results_beyond_float_range_overflow(self, text: str) -> None:
        """Should report overflow for results beyond the float range."""
        with pytest.raises(EvaluationError, match="Numeric overflow"):
            _eval(text)

    def test_large_integer_results_become_floats(self) -> None:
        """Should turn integers beyond 2 ** 53 into floats."""
        result = _eval("a * a", a=10**15)
        assert isinstance(result, float)
        assert result == 1e30

    def test_complex_result(self) -> None:
        """Should reject results that are not real."""
        with pytest.raises(EvaluationError, match="not a real number"):
            _eval("(-8) ** 0.5")

    @pytest.mark.parametrize("text", ["true + 1", "null * 2", "'a' - 1", "-'a'", "-true"])
    def test_type_mismatch(self, text: str) -> None:
        """Should reject arithmetic on non numbers."""
        with pytest.raises(EvaluationError, match="Unsupported operand"):
            _eval(text)


class TestStrings:
    """Tests for string values."""

    def test_concatenation(self) -> None:
        """Should concatenate strings."""
        assert _eval("'a' + 'b'") == "ab"

    def test_concatenation_with_number(self) -> None:
        """Should render numbers when concatenating."""
        assert _eval("'n=' + 6 / 2") == "n=3"
        assert _eval("1.5 + 'x'") == "1.5x"

    def test_concatenation_with_boolean_and_null(self) -> None:
        """Should render booleans and null when concatenating."""
        assert _eval("'' + true + null") == "truenull"

    def test_comparison(self) -> None:
        """Should compare strings."""
        assert _eval("'abc' < 'abd'") is True


class TestComparisonAndLogic:
    """Tests for comparison and logical operators."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("1 < 2", True),
            ("2 <= 2", True),
            ("3 > 4", False),
            ("1 == 1.0", True),
            ("1 === 1", True),
            ("1 != 2", True),
            ("'1' == 1", False),
            ("true == 1", False),
            ("null == null", True),
            ("null !== 0", True),
        ],
    )
    def test_comparisons(self, text: str, expected: bool) -> None:
        """Should compare values strictly."""
        assert _eval(text) is expected

    def test_relational_type_mismatch(self) -> None:
        """Should reject ordering a number against a string."""
        with pytest.raises(EvaluationError, match="Cannot compare number with string"):
            _eval("1 < 'a'")

    def test_and_or_return_operands(self) -> None:
        """Should return an operand from && and ||."""
        assert _eval("0 || 'fallback'") == "fallback"
        assert _eval("2 && 3") == 3
        assert _eval("0 && missing") == 0

    def test_short_circuit_skips_errors(self) -> None:
        """Should not evaluate the skipped operand."""
        assert _eval("true || 1 / 0") is True
        assert _eval("false && 1 / 0") is False

    def test_not(self) -> None:
        """Should negate truthiness."""
        assert _eval("!0") is True
        assert _eval("!'x'") is False

    def test_conditional(self) -> None:
        """Should pick the branch by truthiness."""
        assert _eval("x > 10 ? 'big' : 'small'", x=11) == "big"
        assert _eval("x > 10 ? 'big' : 'small'", x=1) == "small"

    def test_conditional_only_evaluates_chosen_branch(self) -> None:
        """Should evaluate only the chosen branch."""
        assert _eval("true ? 1 : 1 / 0") == 1


class TestNames:
    """Tests for name lookup errors."""

    def test_unknown_name(self) -> None:
        """Should reject an unknown name."""
        with pytest.raises(EvaluationError, match="'x' is not defined"):
            _eval("x + 1")

    def test_module_used_as_value(self) -> None:
        """Should reject a module used as a value."""
        modules = {"geo": compile_module("function f() { return 1; }", name="geo")}
        with pytest.raises(EvaluationError, match="'geo' is a module"):
            evaluate(parse_expression("geo + 1"), {}, modules)


class TestModuleCalls:
    """Tests for calling module functions."""

    @pytest.fixture
    def modules(self) -> dict:
        return {
            "m": compile_module(
                """
                function add(a, b) { return a + b; }
                function twice(x) { return @m.add(x, x); }
                function fact(n) { return n <= 1 ? 1 : n * @m.fact(n - 1); }
                function loop(n) { return @m.loop(n); }
                function outer() { return hidden; }
                """,
                name="m",
            ),
        }

    def test_call(self, modules: dict) -> None:
        """Should call a module function."""
        assert evaluate(parse_expression("@m.add(2, 3)"), {}, modules) == 5

    def test_function_calls_module_function(self, modules: dict) -> None:
        """Should let a function call another module function."""
        assert evaluate(parse_expression("@m.twice(4)"), {}, modules) == 8

    def test_recursion(self, modules: dict) -> None:
        """Should support recursion."""
        assert evaluate(parse_expression("@m.fact(5)"), {}, modules) == 120

    def test_runaway_recursion(self, modules: dict) -> None:
        """Should stop runaway recursion at the call depth limit."""
        with pytest.raises(EvaluationError, match=f"Maximum call depth of {MAX_CALL_DEPTH}"):
            evaluate(parse_expression("@m.loop(1)"), {}, modules)

    def test_body_does_not_see_outer_names(self, modules: dict) -> None:
        """Should hide caller names from function bodies."""
        with pytest.raises(EvaluationError, match="'hidden' is not defined"):
            evaluate(parse_expression("@m.outer()"), {"hidden": 1}, modules)

    def test_unknown_module(self, modules: dict) -> None:
        """Should reject an unknown module."""
        with pytest.raises(EvaluationError, match="Unknown module 'n'"):
            evaluate(parse_expression("@n.add(1, 2)"), {}, modules)

    def test_unknown_function(self, modules: dict) -> None:
        """Should reject an unknown function."""
        with pytest.raises(EvaluationError, match=r"m\.sub is not a function"):
            evaluate(parse_expression("@m.sub(1, 2)"), {}, modules)

    def test_arity_mismatch(self, modules: dict) -> None:
        """Should reject a wrong number of arguments."""
        with pytest.raises(EvaluationError, match=r"expects 2 argument\(s\), got 1"):
            evaluate(parse_expression("@m.add(1)"), {}, modules)


class TestHelpers:
    """Tests for value helpers."""

    def test_normalize_number(self) -> None:
        """Should collapse integral floats and widen huge ints."""
        assert normalize_number(3.0) == 3
        assert isinstance(normalize_number(3.0), int)
        assert normalize_number(3.5) == 3.5
        assert isinstance(normalize_number(1e300), float)
        assert isinstance(normalize_number(2**60), float)
        assert normalize_number(2**53) == 2**53

    @pytest.mark.parametrize("value", [0, 0.0, "", None, False, math.nan])
    def test_falsy(self, value: object) -> None:
        """Should treat zero, empty, null, false and NaN as false."""
        assert not is_truthy(value)

    @pytest.mark.parametrize("value", [1, -0.5, "0", True])
    def test_truthy(self, value: object) -> None:
        """Should treat other values as true."""
        assert is_truthy(value)

    def test_display_string(self) -> None:
        """Should render values for concatenation."""
        assert to_display_string(None) == "null"
        assert to_display_string(True) == "true"
        assert to_display_string(2.0) == "2"
        assert to_display_string("x") == "x"

    def test_display_string_of_special_floats(self) -> None:
        """Should render infinity and NaN by name."""
        assert to_display_string(math.inf) == "Infinity"
        assert to_display_string(-math.inf) == "-Infinity"
        assert to_display_string(math.nan) == "NaN"
        assert _eval("'' + 1e999") == "Infinity"
