"""Exceptions raised by jax_berdy."""


class BerdyError(Exception):
    """Base class of the errors raised while building BERDY problems."""


class InvalidOptionsError(BerdyError, ValueError):
    """The options are not consistent with the selected BERDY variant or model."""


class NotInitializedError(BerdyError, RuntimeError):
    """An operation needs a helper on which ``init`` succeeded."""


class InconsistentSensorModelError(BerdyError, ValueError):
    """A sensor references links or joints that the model does not have."""


class SizeMismatchError(BerdyError, ValueError):
    """A caller-supplied buffer does not match the model sizes."""
