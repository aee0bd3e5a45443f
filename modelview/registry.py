"""
Model view registry.

A registry maps view names to their definitions. Applications may create and
pass around their own ModelViewRegistry; a default registry exists for
definitions that do not name one and is reinitialized by reset().
"""

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional

from .errors import AlreadyDefinedError, NotFoundError
from .hooks import HookRegistry, hooks as global_hooks

if TYPE_CHECKING:
    from .definition import ModelView

logger = logging.getLogger(__name__)


class ModelViewRegistry:
    """Registry of model view definitions indexed by name."""

    def __init__(self, hooks: Optional[HookRegistry] = None):
        self._model_views: Dict[str, 'ModelView'] = {}
        self._lock = threading.Lock()
        self.hooks = hooks if hooks is not None else global_hooks

    def check(self, name: str, allow_override: bool = False) -> None:
        """
        Check that a definition may be registered without changing anything.

        A name collision is allowed when either the registered definition or
        the new one sets allow_override.

        Args:
            name: Name of the definition to register
            allow_override: Whether the new definition may replace an entry

        Raises:
            AlreadyDefinedError: If the name is taken and override is not allowed
        """
        existing = self._model_views.get(name)
        if existing is not None and not (existing.allow_override or allow_override):
            raise AlreadyDefinedError(name)

    def register(self, model_view: 'ModelView') -> None:
        """
        Register a model view definition.

        Either replaces the entry of the same name or fails leaving the
        existing entry untouched.

        Args:
            model_view: Definition to register

        Raises:
            AlreadyDefinedError: If the name is taken and override is not allowed
        """
        name = model_view.name

        with self._lock:
            self.check(name, model_view.allow_override)
            replaced = name in self._model_views
            self._model_views[name] = model_view

        if replaced:
            logger.warning(f"Model view {name} already registered, replacing")
            self.hooks.trigger('view.overridden', model_view)
        else:
            logger.info(f"Registered model view: {name}")
        self.hooks.trigger('view.registered', model_view)

    def get(self, name: str) -> 'ModelView':
        """
        Get a model view definition by name.

        Raises:
            NotFoundError: If no definition is registered under name
        """
        try:
            return self._model_views[name]
        except KeyError:
            raise NotFoundError(name) from None

    def get_all(self) -> Dict[str, 'ModelView']:
        """Get a snapshot of all registered definitions indexed by name."""
        with self._lock:
            return dict(self._model_views)

    def has(self, name: str) -> bool:
        """Check whether a model view with the given name is registered."""
        return name in self._model_views

    def names(self) -> List[str]:
        """Sorted list of registered view names."""
        return sorted(self._model_views)

    def reset(self) -> None:
        """Clear all registered definitions."""
        with self._lock:
            self._model_views.clear()
        logger.debug("Model view registry reset")
        self.hooks.trigger('registry.reset', self)

    def __contains__(self, name: object) -> bool:
        return name in self._model_views

    def __len__(self) -> int:
        return len(self._model_views)

    def __repr__(self):
        return f"<ModelViewRegistry({', '.join(self.names())})>"


# Default registry instance
default_registry = ModelViewRegistry()


def reset() -> None:
    """Reset the default registry to empty."""
    default_registry.reset()


def get_model_view(name: str) -> 'ModelView':
    """Get a model view from the default registry."""
    return default_registry.get(name)


def get_model_views() -> Dict[str, 'ModelView']:
    """Get all model views in the default registry."""
    return default_registry.get_all()


def has_model_view(name: str) -> bool:
    """Check whether the default registry holds a model view."""
    return default_registry.has(name)
