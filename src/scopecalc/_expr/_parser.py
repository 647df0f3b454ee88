"""Recursive descent parser for the expression language.

Precedence, lowest to highest::

    1. conditional      a ? b : c         (right associative)
    2. logical or       ||
    3. logical and      &&
    4. equality         == != === !==
    5. relational       < <= > >=
    6. additive         + -
    7. multiplicative   * / %
    8. unary            - + !
    9. power            **                (right associative)
   10. primary          literal, name, (expr), @module.function(args)
"""

import re

from scopecalc._dependencies import RESERVED_KEYWORDS
from scopecalc._errors import ExpressionSyntaxError

from ._ast import Binary, Conditional, Literal, Logical, ModuleCall, Name, Node, Unary
from ._lexer import Token, TokenKind, tokenize

_LITERAL_NAMES: dict[str, Literal] = {
    "true": Literal(True),
    "false": Literal(False),
    "null": Literal(None),
    "undefined": Literal(None),
}

_EQUALITY_OPS = ("==", "!=", "===", "!==")
_RELATIONAL_OPS = ("<", "<=", ">", ">=")
_ADDITIVE_OPS = ("+", "-")
_MULTIPLICATIVE_OPS = ("*", "/", "%")
_UNARY_OPS = ("-", "+", "!")

_RETURN_RE = re.compile(r"^return\b")


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind != TokenKind.END:
            self._pos += 1
        return token

    def _at_operator(self, *ops: str) -> bool:
        token = self._current
        return token.kind == TokenKind.OPERATOR and token.text in ops

    def _expect_operator(self, op: str) -> Token:
        if not self._at_operator(op):
            raise self._unexpected(f"Expected '{op}'")
        return self._advance()

    def _expect_name(self, what: str) -> str:
        token = self._current
        if token.kind != TokenKind.NAME:
            raise self._unexpected(f"Expected {what}")
        self._advance()
        return token.text

    def _unexpected(self, message: str | None = None) -> ExpressionSyntaxError:
        token = self._current
        if message is None:
            message = "Unexpected end of expression" if token.kind == TokenKind.END else f"Unexpected '{token.text}'"
        elif token.kind == TokenKind.END:
            message = f"{message}, got end of expression"
        else:
            message = f"{message}, got '{token.text}'"
        return ExpressionSyntaxError(message, token.position)

    def parse(self) -> Node:
        node = self._conditional()
        if self._current.kind != TokenKind.END:
            raise self._unexpected()
        return node

    def _conditional(self) -> Node:
        test = self._logical_or()
        if not self._at_operator("?"):
            return test
        self._advance()
        then = self._conditional()
        self._expect_operator(":")
        otherwise = self._conditional()
        return Conditional(test, then, otherwise)

    def _logical_or(self) -> Node:
        node = self._logical_and()
        while self._at_operator("||"):
            self._advance()
            node = Logical("||", node, self._logical_and())
        return node

    def _logical_and(self) -> Node:
        node = self._binary_level(_EQUALITY_OPS)
        while self._at_operator("&&"):
            self._advance()
            node = Logical("&&", node, self._binary_level(_EQUALITY_OPS))
        return node

    def _binary_level(self, ops: tuple[str, ...]) -> Node:
        """Left associative binary operators, one precedence level per call."""
        higher = _NEXT_LEVEL.get(ops)
        node = self._binary_level(higher) if higher is not None else self._unary()
        while self._at_operator(*ops):
            op = self._advance().text
            right = self._binary_level(higher) if higher is not None else self._unary()
            node = Binary(op, node, right)
        return node

    def _unary(self) -> Node:
        if self._at_operator(*_UNARY_OPS):
            op = self._advance().text
            return Unary(op, self._unary())
        return self._power()

    def _power(self) -> Node:
        base = self._primary()
        if self._at_operator("**"):
            self._advance()
            # Right associative: 2 ** 3 ** 2 == 2 ** 9
            return Binary("**", base, self._unary())
        return base

    def _primary(self) -> Node:
        token = self._current
        match token.kind:
            case TokenKind.NUMBER | TokenKind.STRING:
                self._advance()
                return Literal(token.value)
            case TokenKind.NAME:
                self._advance()
                if token.text in _LITERAL_NAMES:
                    return _LITERAL_NAMES[token.text]
                if token.text in RESERVED_KEYWORDS:
                    msg = f"Unexpected keyword '{token.text}'"
                    raise ExpressionSyntaxError(msg, token.position)
                return Name(token.text)
            case TokenKind.OPERATOR if token.text == "(":
                self._advance()
                node = self._conditional()
                self._expect_operator(")")
                return node
            case TokenKind.OPERATOR if token.text == "@":
                return self._module_call()
            case _:
                raise self._unexpected()

    def _module_call(self) -> Node:
        self._expect_operator("@")
        module = self._expect_name("module name after '@'")
        self._expect_operator(".")
        function = self._expect_name("function name")
        self._expect_operator("(")
        args: list[Node] = []
        if not self._at_operator(")"):
            args.append(self._conditional())
            while self._at_operator(","):
                self._advance()
                args.append(self._conditional())
        self._expect_operator(")")
        return ModuleCall(module, function, tuple(args))


_NEXT_LEVEL: dict[tuple[str, ...], tuple[str, ...] | None] = {
    _EQUALITY_OPS: _RELATIONAL_OPS,
    _RELATIONAL_OPS: _ADDITIVE_OPS,
    _ADDITIVE_OPS: _MULTIPLICATIVE_OPS,
    _MULTIPLICATIVE_OPS: None,
}


def parse_expression(text: str) -> Node:
    """Parse expression text into a syntax tree.

    Raises:
        ExpressionSyntaxError: If the text is empty or not a valid expression.

    """
    if not text.strip():
        msg = "Empty expression"
        raise ExpressionSyntaxError(msg)
    try:
        return _Parser(tokenize(text)).parse()
    except RecursionError:
        msg = "Expression is nested too deeply"
        raise ExpressionSyntaxError(msg) from None


def parse_function_body(body: str) -> Node:
    """Parse the body of a module function.

    A body is a single expression, optionally written as ``return expr;``.
    """
    text = body.strip()
    text = text.removesuffix(";").rstrip()
    text = _RETURN_RE.sub("", text, count=1).strip()
    if not text:
        msg = "Function body has no return expression"
        raise ExpressionSyntaxError(msg)
    return parse_expression(text)
