"""Exceptions raised by the rota engine and its persistence glue."""


class RotaError(Exception):
    """Base class for every engine error."""


class CycleConfigError(RotaError):
    """On-call cycle definition cannot resolve a date (bad pattern, date before start...)."""


class ConstraintViolation(RotaError):
    """A write would break a storage invariant (duplicate leave, overlapping slot interval...)."""


class NotFoundError(RotaError):
    """A referenced clinician, duty, slot, leave or request does not exist."""


class InvalidTransition(RotaError):
    """Coverage request lifecycle move not allowed from the current status."""
