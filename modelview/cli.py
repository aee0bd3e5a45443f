import asyncio
import importlib
import importlib.util
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import jmespath
import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install

from .config import get_config_path, load_config, update_config
from .decorators import console as error_console
from .decorators import handle_view_errors
from .errors import InvalidArgumentError
from .execution import execute, execute_async
from .registry import default_registry

# Initialize Rich Traceback for better error messages
install(show_locals=False)

console = Console()

# Configure logging to use Rich's RichHandler
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)]
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Inspect and run registered model views")

MODULE_OPTION_HELP = "Python module or .py file defining views (repeatable)"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode"),
):
    """
    modelview - named, versioned computations over record collections.
    """
    cli_config = load_config().cli
    if verbose or cli_config.verbose:
        logging.getLogger("modelview").setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)

    console.no_color = not cli_config.color
    error_console.no_color = not cli_config.color


def load_view_modules(modules: Optional[List[str]]) -> None:
    """
    Import modules so that the views they define are registered.

    Dotted names are imported normally; paths ending in .py are executed
    from the file.
    """
    names = list(load_config().cli.modules) + list(modules or [])
    for name in names:
        if name.endswith(".py"):
            path = Path(name)
            if not path.exists():
                raise FileNotFoundError(name)
            spec = importlib.util.spec_from_file_location(path.stem, path)
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        else:
            importlib.import_module(name)
        logger.debug(f"Loaded view module {name}")


def _instance_args(properties: Optional[List[str]], args_json: Optional[str]) -> tuple:
    if args_json and properties:
        raise InvalidArgumentError("pass either property names or --args, not both")
    if args_json:
        try:
            return (json.loads(args_json),)
        except json.JSONDecodeError as e:
            raise InvalidArgumentError(f"--args is not valid JSON: {e}")
    return tuple(properties or ())


def _load_records(path: Path) -> List[Any]:
    with open(path, 'r') as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            records = yaml.safe_load(f)
        else:
            records = json.load(f)
    if not isinstance(records, list):
        raise InvalidArgumentError(f"{path} must contain a list of records")
    return records


@app.command("list")
@handle_view_errors
def list_views(
    module: Optional[List[str]] = typer.Option(None, "--module", "-m", help=MODULE_OPTION_HELP),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="JMESPath filter over view descriptions"),
):
    """
    List registered model views.

    Examples:
        modelview list -m myproject.views
        modelview list -m views.py --query "[?type=='record']"
    """
    load_view_modules(module)

    descriptions = [view.describe() for view in default_registry.get_all().values()]
    if query:
        selected = jmespath.search(query, descriptions)
        # index expressions such as [0] select a single description
        if isinstance(selected, dict):
            selected = [selected]
        if selected is not None and not (isinstance(selected, list) and all(isinstance(d, dict) for d in selected)):
            console.print_json(json.dumps(selected, default=str))
            return
        descriptions = selected or []

    if not descriptions:
        console.print("[yellow]No model views registered[/yellow]")
        return

    table = Table(title="Model Views")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Sequential", style="magenta")
    table.add_column("Synchronous", style="magenta")
    table.add_column("Definition ID", style="dim")

    for description in sorted(descriptions, key=lambda d: d.get('name', '')):
        table.add_row(
            str(description.get('name')),
            str(description.get('type')),
            str(description.get('sequential')),
            str(description.get('synchronous')),
            str(description.get('definition_id')),
        )

    console.print(table)


@app.command()
@handle_view_errors
def show(
    name: str = typer.Argument(..., help="View name"),
    module: Optional[List[str]] = typer.Option(None, "--module", "-m", help=MODULE_OPTION_HELP),
    output_format: str = typer.Option("json", "--format", "-f", help="Output format: json or yaml"),
):
    """Show the normalized definition of a model view."""
    load_view_modules(module)
    description = default_registry.get(name).describe()

    if output_format == "yaml":
        console.print(yaml.safe_dump(description, sort_keys=True), end="")
    elif output_format == "json":
        console.print_json(json.dumps(description))
    else:
        raise InvalidArgumentError(f"unknown format {output_format}")


@app.command("id")
@handle_view_errors
def instance_id(
    name: str = typer.Argument(..., help="View name"),
    properties: Optional[List[str]] = typer.Argument(None, help="Property names"),
    args_json: Optional[str] = typer.Option(None, "--args", help="Instance arguments as a JSON object"),
    module: Optional[List[str]] = typer.Option(None, "--module", "-m", help=MODULE_OPTION_HELP),
):
    """
    Print the instance id a view would have for the given arguments.

    Examples:
        modelview id sum price -m views.py
        modelview id sum --args '{"column": "price"}' -m views.py
    """
    load_view_modules(module)
    instance = default_registry.get(name)(*_instance_args(properties, args_json))
    console.print(instance.instance_id)


@app.command()
@handle_view_errors
def run(
    name: str = typer.Argument(..., help="View name"),
    records_file: Path = typer.Argument(..., help="JSON or YAML file with a list of records"),
    properties: Optional[List[str]] = typer.Argument(None, help="Property names"),
    args_json: Optional[str] = typer.Option(None, "--args", help="Instance arguments as a JSON object"),
    module: Optional[List[str]] = typer.Option(None, "--module", "-m", help=MODULE_OPTION_HELP),
    partition_size: Optional[int] = typer.Option(None, "--partition-size", help="Records per partition"),
    max_workers: Optional[int] = typer.Option(None, "--max-workers", help="Worker threads"),
    skip_failed: bool = typer.Option(False, "--skip-failed", help="Skip failed partitions instead of aborting"),
):
    """
    Run a model view over records loaded from a file and print the result.

    Examples:
        modelview run sum records.json price -m views.py
        modelview run sum records.yaml --partition-size 100 -m views.py
    """
    config = load_config()
    load_view_modules(module)

    instance = default_registry.get(name)(*_instance_args(properties, args_json))
    records = _load_records(records_file)

    options = {
        'partition_size': partition_size or config.execution.partition_size,
        'on_partition_error': "skip" if skip_failed else config.execution.on_partition_error,
    }

    if instance.synchronous:
        result = execute(instance, records, max_workers=max_workers or config.execution.max_workers, **options)
    else:
        result = asyncio.run(execute_async(instance, records, **options))

    logger.debug(f"Ran {name} over {len(records)} records")
    console.print_json(json.dumps(result, default=str))


@app.command()
def config(
    partition_size: Optional[int] = typer.Option(None, "--partition-size", help="Set default partition size"),
    max_workers: Optional[int] = typer.Option(None, "--max-workers", help="Set default worker threads"),
    on_partition_error: Optional[str] = typer.Option(None, "--on-partition-error", help="Set partition error policy (raise, skip)"),
    set_verbose: Optional[bool] = typer.Option(None, "--cli-verbose/--no-cli-verbose", help="Enable verbose output by default"),
    set_color: Optional[bool] = typer.Option(None, "--cli-color/--no-cli-color", help="Enable colored output"),
    add_module: Optional[List[str]] = typer.Option(None, "--add-module", help="Module to load before every command"),
):
    """
    View or edit modelview configuration.

    Configuration is stored at ~/.config/modelview/config.json (or
    ~/.modelview/config.json, or $MODELVIEW_CONFIG).
    """
    has_settings = any([
        partition_size is not None, max_workers is not None, on_partition_error,
        set_verbose is not None, set_color is not None, add_module,
    ])

    if not has_settings:
        current = load_config()
        console.print("\n[bold]modelview Configuration[/bold]")
        console.print(f"[dim]Location: {get_config_path()}[/dim]\n")

        console.print("[bold cyan]Execution Settings:[/bold cyan]")
        console.print(f"  Partition Size:     {current.execution.partition_size}")
        console.print(f"  Max Workers:        {current.execution.max_workers or 'default'}")
        console.print(f"  On Partition Error: {current.execution.on_partition_error}")

        console.print("\n[bold cyan]CLI Settings:[/bold cyan]")
        console.print(f"  Verbose:            {current.cli.verbose}")
        console.print(f"  Color:              {current.cli.color}")
        console.print(f"  Modules:            {', '.join(current.cli.modules) or '[dim]none[/dim]'}")
        return

    if on_partition_error is not None and on_partition_error not in ("raise", "skip"):
        console.print(f"[bold red]Error:[/bold red] Invalid partition error policy: {on_partition_error}")
        raise typer.Exit(code=1)

    modules = None
    if add_module:
        modules = list(load_config().cli.modules) + list(add_module)

    update_config(
        partition_size=partition_size,
        max_workers=max_workers,
        on_partition_error=on_partition_error,
        cli_verbose=set_verbose,
        cli_color=set_color,
        cli_modules=modules,
    )
    console.print(f"[green]Configuration updated at {get_config_path()}[/green]")


if __name__ == "__main__":
    app()
