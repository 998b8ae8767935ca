"""
Exception types raised by mini_dnn.
"""


class DNNError(Exception):
    """Base class for all mini_dnn errors."""


class ShapeError(DNNError):
    """Input or output shape does not match what a layer or loss expects."""


class ConfigurationError(DNNError):
    """A model or optimizer was used before it was set up or built."""


class UnknownEventError(DNNError):
    """A callback was registered for an event the model does not emit."""


class UnknownTypeError(DNNError):
    """A serialized record names a class that is not registered."""
