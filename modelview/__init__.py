"""
modelview - named, versioned computations over record collections.

Main API:
    from modelview import ModelView, execute

    def pre(args):
        return {'total': 0}

    def each(context, record, index):
        context['total'] += record['price']

    def post(context):
        return context['total']

    # Define and register a view
    total = ModelView(name='total', type='collection', pre=pre, each=each, post=post)

    # Instantiate it with arguments; instance_id identifies the result
    view = total('price')

    # Run it over records
    execute(view, [{'price': 2}, {'price': 3}])  # 5

    # Look it up elsewhere
    from modelview import get_model_view
    get_model_view('total') is total  # True
"""

from .definition import ModelView, is_model_view, validate_config
from .errors import (
    AlreadyDefinedError,
    ExecutionError,
    InvalidArgumentError,
    ModelViewError,
    NotFoundError,
    ValidationError,
)
from .execution import ExecutionState, ViewExecution, execute, execute_async, partition_records
from .ident import stable_id
from .instance import ModelViewInstance, NamedConfig, PropertyList, is_model_view_instance, parse_instance_args
from .registry import (
    ModelViewRegistry,
    default_registry,
    get_model_view,
    get_model_views,
    has_model_view,
    reset,
)

__version__ = "0.1.0"
__all__ = [
    "ModelView",
    "ModelViewInstance",
    "ModelViewRegistry",
    "NamedConfig",
    "PropertyList",
    "ViewExecution",
    "ExecutionState",
    "execute",
    "execute_async",
    "partition_records",
    "stable_id",
    "parse_instance_args",
    "validate_config",
    "is_model_view",
    "is_model_view_instance",
    "default_registry",
    "get_model_view",
    "get_model_views",
    "has_model_view",
    "reset",
    "ModelViewError",
    "ValidationError",
    "AlreadyDefinedError",
    "NotFoundError",
    "InvalidArgumentError",
    "ExecutionError",
]
