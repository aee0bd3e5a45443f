"""
Exceptions raised by modelview.

All errors are raised synchronously at the call that caused them. No partially
constructed definition or instance is ever observable after one of these.
"""


class ModelViewError(Exception):
    """Base class for modelview errors."""
    pass


class ValidationError(ModelViewError, ValueError):
    """Invalid model view definition (bad name, type or callback)."""
    pass


class AlreadyDefinedError(ModelViewError, ValueError):
    """A model view with the same name is registered and may not be overridden."""

    def __init__(self, name: str):
        super().__init__(f"model view {name} already defined")
        self.name = name


class NotFoundError(ModelViewError, LookupError):
    """Model view lookup miss."""

    def __init__(self, name: str):
        super().__init__(f"model view {name} not found")
        self.name = name


class InvalidArgumentError(ModelViewError, TypeError):
    """Malformed arguments passed when instantiating a model view."""
    pass


class ExecutionError(ModelViewError, RuntimeError):
    """Model view instance driven in a way its definition does not support."""
    pass
