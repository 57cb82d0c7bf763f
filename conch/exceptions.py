"""Conch exception hierarchy.

All conch exceptions inherit from ConchError and support cause chaining.
Completion itself never raises on user input; these cover configuration
and caller-side misuse.
"""


class ConchError(Exception):
    """Base exception for all conch errors.

    Wraps original errors as __cause__ for proper exception chaining.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


class ConchConfigError(ConchError):
    """Raised when configuration cannot be read or validated.

    Examples: malformed TOML, unknown option types in [tool.conch].
    """

    pass


class SideEffectError(ConchError):
    """Raised inside the environment when a silent evaluation would run code.

    Never reaches the completer's caller: it is reported back as
    exception details, like any other evaluation failure.
    """

    def __init__(self, message: str, *, expression: str = "", node: str = ""):
        super().__init__(message)
        self.expression = expression
        self.node = node


class PatternRequiredError(ConchError):
    """Raised when grep() is called without a pattern."""

    pass
