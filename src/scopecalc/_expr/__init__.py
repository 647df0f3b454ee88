"""Expression language used by lines and module function bodies.

Key pieces:
- tokenize: Split text into tokens
- parse_expression / parse_function_body: Build a syntax tree
- Evaluator / evaluate: Walk a syntax tree and compute its value
"""

from ._ast import Binary, Conditional, Literal, Logical, ModuleCall, Name, Node, Unary, Value
from ._evaluator import MAX_CALL_DEPTH, Evaluator, evaluate, is_truthy, normalize_number, to_display_string
from ._lexer import Token, TokenKind, tokenize
from ._parser import parse_expression, parse_function_body

__all__ = [
    "MAX_CALL_DEPTH",
    "Binary",
    "Conditional",
    "Evaluator",
    "Literal",
    "Logical",
    "ModuleCall",
    "Name",
    "Node",
    "Token",
    "TokenKind",
    "Unary",
    "Value",
    "evaluate",
    "is_truthy",
    "normalize_number",
    "parse_expression",
    "parse_function_body",
    "to_display_string",
    "tokenize",
]
