"""Exception types raised while parsing and evaluating expressions."""


class ScopecalcError(Exception):
    """Base class for scopecalc errors."""


class ExpressionSyntaxError(ScopecalcError):
    """The expression text does not match the expression grammar."""

    def __init__(self, message: str, position: int | None = None) -> None:
        self.message = message
        self.position = position
        if position is not None:
            message = f"{message} at position {position}"
        super().__init__(message)


class EvaluationError(ScopecalcError):
    """Evaluating a well-formed expression failed (bad operands, bad call, ...)."""
