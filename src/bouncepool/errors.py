"""Exception types raised by bouncepool."""


class BouncepoolError(Exception):
    """Base class for bouncepool errors."""


class InvalidInputError(BouncepoolError, ValueError):
    """
    Malformed numeric input to an estimator.

    Raised for a non-positive residual variance, a negative group-level
    variance, or a non-positive sample count.
    """


class UndefinedGroupError(BouncepoolError, KeyError):
    """A requested group has no observations, so it has no estimate to shrink."""

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"group {group_id!r} has no observations")

    def __str__(self) -> str:
        return self.args[0]
