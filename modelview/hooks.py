"""
Hook system for modelview.

Lets callers register callbacks for model view lifecycle events: definition,
registration, instantiation and execution state changes. Hooks observe; a
failing hook is logged and never aborts the operation that triggered it.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class HookRegistry:
    """Registry for managing hook callbacks."""

    def __init__(self):
        self._hooks: Dict[str, List[Callable]] = defaultdict(list)
        self._async_hooks: Dict[str, List[Callable]] = defaultdict(list)
        self._hook_priorities: Dict[str, Dict[Callable, int]] = defaultdict(dict)

    def register_hook(self,
                      event: str,
                      callback: Callable,
                      priority: int = 0) -> None:
        """
        Register a hook callback.

        Args:
            event: Event name to hook into
            callback: Callback function
            priority: Priority (higher runs first)
        """
        if asyncio.iscoroutinefunction(callback):
            hooks_for_kind = self._async_hooks
        else:
            hooks_for_kind = self._hooks

        hooks_for_kind[event].append(callback)
        self._hook_priorities[event][callback] = priority
        hooks_for_kind[event].sort(
            key=lambda cb: self._hook_priorities[event].get(cb, 0),
            reverse=True
        )

        logger.debug(f"Registered hook for {event}: {callback.__name__} (priority: {priority})")

    def unregister_hook(self, event: str, callback: Callable) -> bool:
        """
        Unregister a hook callback.

        Returns:
            True if callback was removed
        """
        removed = False

        if callback in self._hooks.get(event, []):
            self._hooks[event].remove(callback)
            removed = True

        if callback in self._async_hooks.get(event, []):
            self._async_hooks[event].remove(callback)
            removed = True

        if removed:
            self._hook_priorities[event].pop(callback, None)
            logger.debug(f"Unregistered hook for {event}: {callback.__name__}")

        return removed

    def trigger(self, event: str, *args, **kwargs) -> List[Any]:
        """
        Trigger all synchronous callbacks for an event.

        Args:
            event: Event name
            *args: Positional arguments for callbacks
            **kwargs: Keyword arguments for callbacks

        Returns:
            List of non-None results from callbacks
        """
        results = []

        for callback in self._hooks.get(event, []):
            try:
                result = callback(*args, **kwargs)
                if result is not None:
                    results.append(result)
            except Exception as e:
                logger.error(f"Hook {callback.__name__} failed for event {event}: {e}")

        if self._async_hooks.get(event):
            logger.warning(f"Async hooks registered for {event} but triggered synchronously")

        return results

    async def trigger_async(self, event: str, *args, **kwargs) -> List[Any]:
        """
        Trigger all callbacks for an event, awaiting async ones.

        Returns:
            List of non-None results from callbacks
        """
        results = []

        for callback in self._hooks.get(event, []):
            try:
                result = callback(*args, **kwargs)
                if result is not None:
                    results.append(result)
            except Exception as e:
                logger.error(f"Hook {callback.__name__} failed for event {event}: {e}")

        tasks = [callback(*args, **kwargs) for callback in self._async_hooks.get(event, [])]
        if tasks:
            async_results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in async_results:
                if isinstance(result, Exception):
                    logger.error(f"Async hook failed for event {event}: {result}")
                elif result is not None:
                    results.append(result)

        return results

    def has_hooks(self, event: str) -> bool:
        """Check if an event has any hooks registered."""
        return bool(self._hooks.get(event) or self._async_hooks.get(event))

    def list_hooks(self) -> Dict[str, List[str]]:
        """
        List all registered hooks.

        Returns:
            Dictionary mapping events to callback names
        """
        result: Dict[str, List[str]] = {}

        for event, callbacks in self._hooks.items():
            result.setdefault(event, []).extend(cb.__name__ for cb in callbacks)

        for event, callbacks in self._async_hooks.items():
            result.setdefault(event, []).extend(f"{cb.__name__} (async)" for cb in callbacks)

        return result

    def clear_hooks(self, event: Optional[str] = None) -> None:
        """
        Clear hooks for an event or all events.

        Args:
            event: Event name to clear, or None to clear all
        """
        if event:
            self._hooks.pop(event, None)
            self._async_hooks.pop(event, None)
            self._hook_priorities.pop(event, None)
        else:
            self._hooks.clear()
            self._async_hooks.clear()
            self._hook_priorities.clear()


# Global hook registry
hooks = HookRegistry()


def hook(event: str, priority: int = 0):
    """
    Decorator for registering hook callbacks on the global registry.

    Usage:
        @hook("view.registered")
        def on_registered(model_view):
            print(f"Registered {model_view.name}")

    Args:
        event: Event name to hook into
        priority: Priority (higher runs first)

    Returns:
        Decorator function
    """
    def decorator(func: Callable) -> Callable:
        hooks.register_hook(event, func, priority)
        return func
    return decorator


def trigger_hook(event: str, *args, **kwargs) -> List[Any]:
    """Trigger all callbacks for an event on the global registry."""
    return hooks.trigger(event, *args, **kwargs)


# Events that modelview triggers
EVENTS = {
    # Definition events
    'view.defined': 'Model view definition constructed',
    'view.registered': 'Model view added to a registry',
    'view.overridden': 'Registered model view replaced by a new definition',
    'registry.reset': 'Registry cleared',

    # Instance events
    'view.instantiated': 'Model view instance created',

    # Execution events
    'execution.state': 'Execution changed state',
    'execution.partition_failed': 'Partition failed and was skipped',
    'execution.completed': 'Execution finished with a result',
    'execution.cache_hit': 'Execution result served from cache',
}


def list_available_events() -> Dict[str, str]:
    """List all available events with descriptions."""
    return EVENTS.copy()
