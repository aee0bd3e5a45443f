"""Decorators for modelview functionality."""

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, Optional

import typer
from rich.console import Console

from .errors import AlreadyDefinedError, InvalidArgumentError, ModelViewError, NotFoundError

logger = logging.getLogger(__name__)
console = Console(stderr=True)


def immutable_function(qualified_name: str,
                       fn: Callable,
                       options: Optional[Dict[str, Any]] = None) -> Callable:
    """
    Wrap a model view callback under a qualified name.

    The wrapper keeps the calling contract of ``fn`` (coroutine functions stay
    coroutine functions), traces calls at debug level and logs failures before
    re-raising them. It carries a ``meta`` dict that becomes part of the
    callback's identity.

    Args:
        qualified_name: Name such as ``sumModelView.each``
        fn: Callback to wrap
        options: Extra options recorded in the wrapper meta data

    Returns:
        Wrapped callable
    """
    meta = {'name': qualified_name}
    if options:
        meta.update(options)

    if asyncio.iscoroutinefunction(fn):
        @functools.wraps(fn)
        async def async_wrapper(*args, **kwargs) -> Any:
            logger.debug(f"Calling {qualified_name}")
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                logger.error(f"{qualified_name} failed: {e}")
                raise

        async_wrapper.meta = meta
        return async_wrapper

    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> Any:
        logger.debug(f"Calling {qualified_name}")
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            logger.error(f"{qualified_name} failed: {e}")
            raise

    wrapper.meta = meta
    return wrapper


def handle_view_errors(func: Callable) -> Callable:
    """
    Decorator to turn model view errors into CLI exit codes.

    - NotFoundError: View is not registered
    - AlreadyDefinedError: Name collision while loading view modules
    - InvalidArgumentError / other ModelViewError: Bad input
    - FileNotFoundError: Records or module file missing
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except NotFoundError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            console.print("[yellow]Tip: Load the module that defines the view with --module[/yellow]")
            raise typer.Exit(code=1)
        except AlreadyDefinedError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
        except InvalidArgumentError as e:
            console.print(f"[bold red]Error:[/bold red] Invalid arguments: {e}")
            raise typer.Exit(code=1)
        except ModelViewError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
        except FileNotFoundError as e:
            console.print(f"[bold red]Error:[/bold red] File not found: {e}")
            raise typer.Exit(code=1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            raise typer.Exit(code=130)

    return wrapper
