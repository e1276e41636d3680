"""Content errors raised by the dice and rules layer."""


class InvalidInput(ValueError):
    """A die was asked for with fewer than one side."""


class InvalidExpression(ValueError):
    """A dice expression does not match the NdS[+/-M] notation."""
