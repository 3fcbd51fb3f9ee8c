"""Error kinds raised by the training core.

All of them are recoverable, caller-facing conditions. The HTTP layer maps
them to status codes; nothing here is fatal to the process.
"""

from __future__ import annotations


class CrossroadsError(Exception):
    """Base class for every error the core surfaces to its host."""


class NotFound(CrossroadsError):
    """An id reference (training, role, tier, boss, participant, signup) is unknown."""


class IllegalState(CrossroadsError):
    """The operation is not permitted in the training's current lifecycle state."""


class IllegalTransition(CrossroadsError):
    """A lifecycle change was requested that is not the immediate successor."""


class Conflict(CrossroadsError):
    """A uniqueness rule would be violated."""


class InUse(Conflict):
    """The entity is still referenced and cannot be removed."""


class Forbidden(CrossroadsError):
    """The participant's tier does not satisfy the training's requirement."""


class InvalidReference(CrossroadsError):
    """A role or boss is not attached to the training it is used with."""


class InvalidPriority(CrossroadsError):
    """A role priority lies outside the allowed range."""


class EmptyInput(CrossroadsError):
    """The resolver was asked to run on a training with no required slots."""
