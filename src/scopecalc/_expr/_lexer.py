"""Tokenizer for the expression language."""

from dataclasses import dataclass
from enum import StrEnum

from scopecalc._errors import ExpressionSyntaxError


class TokenKind(StrEnum):
    NUMBER = "number"
    STRING = "string"
    NAME = "name"
    OPERATOR = "operator"
    END = "end"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    position: int
    value: int | float | str | None = None


# Longest operators first so `===` wins over `==` and `**` over `*`.
OPERATORS = (
    "===",
    "!==",
    "**",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "+",
    "-",
    "*",
    "/",
    "%",
    "<",
    ">",
    "!",
    "?",
    ":",
    "(",
    ")",
    ",",
    ".",
    "@",
)

_DIGITS = frozenset("0123456789")
_NAME_START = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_")
_NAME_CHARS = _NAME_START | _DIGITS

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"', "0": "\0"}

_MAX_SAFE_INTEGER = 2**53
_MAX_INT_DIGITS = 16


def _read_number(text: str, start: int) -> tuple[Token, int]:
    i = start
    length = len(text)
    while i < length and text[i] in _DIGITS:
        i += 1
    is_float = False
    if i < length and text[i] == "." and (i + 1 < length and text[i + 1] in _DIGITS or i > start):
        is_float = True
        i += 1
        while i < length and text[i] in _DIGITS:
            i += 1
    if i < length and text[i] in "eE":
        j = i + 1
        if j < length and text[j] in "+-":
            j += 1
        if j < length and text[j] in _DIGITS:
            is_float = True
            i = j
            while i < length and text[i] in _DIGITS:
                i += 1
    if i < length and text[i] in _NAME_START:
        msg = f"Invalid number literal '{text[start : i + 1]}'"
        raise ExpressionSyntaxError(msg, start)

    literal = text[start:i]
    try:
        value: int | float = float(literal) if is_float else int(literal[:_MAX_INT_DIGITS])
    except ValueError as e:
        raise ExpressionSyntaxError(str(e), start) from e
    if not is_float and (len(literal) > _MAX_INT_DIGITS or value > _MAX_SAFE_INTEGER):
        # Too large for an exact int; read it like any other float.
        value = float(literal)
    return Token(TokenKind.NUMBER, literal, start, value), i


def _read_string(text: str, start: int) -> tuple[Token, int]:
    quote = text[start]
    chars: list[str] = []
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == quote:
            return Token(TokenKind.STRING, text[start : i + 1], start, "".join(chars)), i + 1
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            chars.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        chars.append(ch)
        i += 1
    msg = "Unterminated string literal"
    raise ExpressionSyntaxError(msg, start)


def tokenize(text: str) -> list[Token]:
    """Split expression text into tokens, ending with an END token.

    Raises:
        ExpressionSyntaxError: On characters outside the expression grammar.

    """
    tokens: list[Token] = []
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch in _DIGITS or (ch == "." and i + 1 < length and text[i + 1] in _DIGITS):
            token, i = _read_number(text, i)
            tokens.append(token)
            continue
        if ch in "\"'":
            token, i = _read_string(text, i)
            tokens.append(token)
            continue
        if ch in _NAME_START:
            start = i
            while i < length and text[i] in _NAME_CHARS:
                i += 1
            tokens.append(Token(TokenKind.NAME, text[start:i], start))
            continue
        for op in OPERATORS:
            if text.startswith(op, i):
                tokens.append(Token(TokenKind.OPERATOR, op, i))
                i += len(op)
                break
        else:
            msg = f"Unexpected character '{ch}'"
            raise ExpressionSyntaxError(msg, i)

    tokens.append(Token(TokenKind.END, "", length))
    return tokens
