"""
Model view instances and the arguments used to create them.

A definition is instantiated with either a single mapping of free-form
parameters or a list of property names:

    sum_view({'column': 'price'})   -> NamedConfig
    sum_view('price', 'tax')        -> PropertyList
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple, Union

from .errors import InvalidArgumentError

if TYPE_CHECKING:
    from .definition import ModelView


@dataclass(frozen=True)
class NamedConfig:
    """Free-form instance parameters, copied into args."""
    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PropertyList:
    """Ordered property names the view should act on."""
    properties: Tuple[str, ...] = ()

    def __post_init__(self):
        for prop in self.properties:
            if not isinstance(prop, str):
                raise InvalidArgumentError(f"invalid argument {prop!r}: property names must be strings")


ViewArgs = Union[NamedConfig, PropertyList]


def parse_instance_args(*args: Any) -> ViewArgs:
    """
    Convert raw call arguments into instance arguments.

    Args:
        *args: Nothing, a single mapping, or one or more strings

    Returns:
        NamedConfig or PropertyList

    Raises:
        InvalidArgumentError: For any other shape, e.g. a string followed
        by a mapping or a lone number
    """
    if not args:
        return NamedConfig({})

    if len(args) == 1 and isinstance(args[0], Mapping):
        return NamedConfig(args[0])

    for arg in args:
        if not isinstance(arg, str):
            raise InvalidArgumentError(
                f"invalid argument {arg!r}: expected a single mapping or property name strings"
            )
    return PropertyList(tuple(args))


@dataclass(frozen=True, eq=False)
class ModelViewInstance:
    """
    A model view bound to arguments.

    Carries the normalized fields of its definition plus ``args`` and an
    ``instance_id``. Two instances with the same instance_id are
    interchangeable, so a cache may reuse one's result for the other.
    """
    name: str
    type: str
    each: Callable
    pre: Optional[Callable]
    post: Optional[Callable]
    sequential: bool
    synchronous: bool
    allow_override: bool
    register: bool
    immutable: bool
    cache: bool
    meta: bool
    module_name: Optional[str]
    definition_id: str
    args: Mapping[str, Any]
    instance_id: str
    definition: 'ModelView' = field(repr=False, compare=False)

    def __eq__(self, other):
        if not isinstance(other, ModelViewInstance):
            return NotImplemented
        return self.instance_id == other.instance_id

    def __hash__(self):
        return hash(self.instance_id)

    @property
    def properties(self) -> Tuple[str, ...]:
        """Property names the instance was created with, if any."""
        return tuple(self.args.get('properties', ()))

    def describe(self) -> Dict[str, Any]:
        """Plain dictionary description for display."""
        description = self.definition.describe()
        description.update({
            'args': dict(self.args),
            'instance_id': self.instance_id,
        })
        return description


def is_model_view_instance(obj: Any) -> bool:
    """Check whether obj is a model view instance."""
    return isinstance(obj, ModelViewInstance)
