"""
Exceptions raised by the GAM fitting / marginal-mean helpers.

Both are fatal for the call that raised them: callers should stop and report,
not fall back to defaults (a grid built with the wrong transform looks fine
on a plot and is wrong).
"""


class InvalidArgument(ValueError):
    """Bad input: unknown/non-numeric column, bad point count, bad transform domain."""


class ModelQueryError(RuntimeError):
    """The fitted model could not evaluate the requested term at the requested points."""
