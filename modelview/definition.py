"""
Model view definitions.

A ModelView is the validated, normalized description of a computation over a
record sequence. Once constructed it is immutable and callable: calling it
produces a ModelViewInstance bound to arguments.

Example:
    from modelview import ModelView

    def pre(args):
        return {'total': 0}

    def each(context, record, index):
        context['total'] += record['price']

    def post(context):
        return context['total']

    total_price = ModelView(name='totalPrice', type='collection',
                            pre=pre, each=each, post=post)

    view = total_price('price')
    view.args         # {'properties': ['price']}
    view.instance_id  # 32 character hex id
"""

import copy
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .decorators import immutable_function
from .errors import InvalidArgumentError, ValidationError
from .hooks import HookRegistry
from .ident import stable_id
from .instance import ModelViewInstance, NamedConfig, PropertyList, ViewArgs, parse_instance_args
from .registry import ModelViewRegistry, default_registry

logger = logging.getLogger(__name__)

COLLECTION = 'collection'
RECORD = 'record'

VALID_TYPES = {
    # collection views return a single value calculated by calling each on
    # every record in the collection
    COLLECTION: True,
    # record views are applied to each record and return the modified records
    RECORD: True,
}

CALLBACKS = ('each', 'post', 'pre')

DEFAULT_OPTIONS: Dict[str, Any] = {
    # allow registered model views with the same name to be replaced
    'allow_override': False,
    # results of instances may be cached by instance_id
    'cache': True,
    # wrap each, pre and post through immutable_function
    'immutable': True,
    # records are wrapped in a meta data envelope (interpreted by drivers)
    'meta': False,
    'name': '',
    # add model view to the registry
    'register': True,
    # records must be processed in order with a single context
    'sequential': True,
    # callbacks complete immediately (False allows coroutine callbacks)
    'synchronous': True,
    'type': '',
    # called for every record
    'each': None,
    # called once before iteration (per partition when not sequential);
    # returns the context passed to each
    'pre': None,
    # called once after iteration with the context, or with the list of
    # partition contexts when not sequential; returns the view result
    'post': None,
}

BOOLEAN_OPTIONS = ('allow_override', 'cache', 'immutable', 'meta', 'register', 'sequential', 'synchronous')

# camelCase spellings accepted in configuration dictionaries
OPTION_ALIASES = {
    'allowOverride': 'allow_override',
}


def _merge_config(config: Optional[Mapping[str, Any]], options: Dict[str, Any]) -> Dict[str, Any]:
    if config is not None and not isinstance(config, Mapping):
        raise ValidationError(f"model view config must be a mapping, not {type(config).__name__}")

    merged: Dict[str, Any] = {}
    for source in (config or {}, options):
        for key, value in source.items():
            merged[OPTION_ALIASES.get(key, key)] = value
    return merged


def validate_config(config: Mapping[str, Any]) -> None:
    """
    Validate a raw model view configuration.

    Checks run in a fixed order and the first failure is raised.

    Raises:
        ValidationError: If the configuration is invalid
    """
    name = config.get('name')
    if not isinstance(name, str) or not name:
        raise ValidationError("name required")

    view_type = config.get('type')
    if not isinstance(view_type, str) or view_type not in VALID_TYPES:
        raise ValidationError(f"invalid type {view_type}")

    if view_type == RECORD and (config.get('pre') is not None or config.get('post') is not None):
        raise ValidationError("pre and post functions not allowed with record views")

    if not callable(config.get('each')):
        raise ValidationError("each function required")

    if config.get('post') is not None and not callable(config['post']):
        raise ValidationError("post must be function")

    if config.get('pre') is not None and not callable(config['pre']):
        raise ValidationError("pre must be function")

    unknown = sorted(set(config) - set(DEFAULT_OPTIONS))
    if unknown:
        raise ValidationError(f"unknown model view options: {', '.join(unknown)}")

    for key in BOOLEAN_OPTIONS:
        if key in config and not isinstance(config[key], bool):
            raise ValidationError(f"{key} must be a boolean, not {config[key]!r}")


def _callable_name(fn: Optional[Callable]) -> Optional[str]:
    if fn is None:
        return None
    meta = getattr(fn, 'meta', None)
    if isinstance(meta, dict) and meta.get('name'):
        return meta['name']
    return getattr(fn, '__qualname__', repr(fn))


class ModelView:
    """
    Named, validated model view definition.

    Args:
        config: Mapping of options (see DEFAULT_OPTIONS)
        registry: Registry to register with (defaults to the default registry)
        wrapper: Callback wrapping function ``wrap(qualified_name, fn, options)``
            used when immutable is set
        hooks: Hook registry notified of lifecycle events (defaults to the
            registry's hooks)
        **options: Options, overriding those in config

    Raises:
        ValidationError: If the configuration is invalid
        AlreadyDefinedError: If registration is requested and the name is taken
    """

    def __init__(self,
                 config: Optional[Mapping[str, Any]] = None,
                 *,
                 registry: Optional[ModelViewRegistry] = None,
                 wrapper: Optional[Callable] = None,
                 hooks: Optional[HookRegistry] = None,
                 **options):
        args = _merge_config(config, options)
        validate_config(args)

        model_view = dict(DEFAULT_OPTIONS)
        # record views run parallel and out of order by default
        if args['type'] == RECORD:
            model_view['sequential'] = False
        model_view.update(args)
        model_view['module_name'] = None

        registry = registry if registry is not None else default_registry
        if model_view['register']:
            registry.check(model_view['name'], model_view['allow_override'])

        if model_view['immutable']:
            self._make_immutable(model_view, wrapper or immutable_function)

        object.__setattr__(self, '_registry', registry)
        object.__setattr__(self, '_hooks', hooks if hooks is not None else registry.hooks)
        object.__setattr__(self, '_options', MappingProxyType(model_view))
        object.__setattr__(self, '_definition_id', stable_id(dict(model_view)))

        logger.debug(f"Defined model view {self.name} ({self.definition_id})")
        self._hooks.trigger('view.defined', self)

        if self.register:
            registry.register(self)

    @staticmethod
    def _make_immutable(model_view: Dict[str, Any], wrapper: Callable) -> None:
        """Replace each, pre and post with wrapped versions named after the view."""
        module_name = f"{model_view['name']}ModelView"
        model_view['module_name'] = module_name
        options = {
            'allow_override': model_view['allow_override'],
            'synchronous': model_view['synchronous'],
        }
        for callback in CALLBACKS:
            if model_view[callback] is not None:
                model_view[callback] = wrapper(f"{module_name}.{callback}", model_view[callback], options)
                logger.debug(f"Wrapped {module_name}.{callback}")

    def __setattr__(self, key, value):
        raise AttributeError(f"ModelView {self.name} is immutable")

    def __delattr__(self, key):
        raise AttributeError(f"ModelView {self.name} is immutable")

    # =========================================================================
    # Options
    # =========================================================================

    @property
    def name(self) -> str:
        return self._options['name']

    @property
    def type(self) -> str:
        return self._options['type']

    @property
    def each(self) -> Callable:
        return self._options['each']

    @property
    def pre(self) -> Optional[Callable]:
        return self._options['pre']

    @property
    def post(self) -> Optional[Callable]:
        return self._options['post']

    @property
    def sequential(self) -> bool:
        return self._options['sequential']

    @property
    def synchronous(self) -> bool:
        return self._options['synchronous']

    @property
    def allow_override(self) -> bool:
        return self._options['allow_override']

    @property
    def register(self) -> bool:
        return self._options['register']

    @property
    def immutable(self) -> bool:
        return self._options['immutable']

    @property
    def cache(self) -> bool:
        return self._options['cache']

    @property
    def meta(self) -> bool:
        return self._options['meta']

    @property
    def module_name(self) -> Optional[str]:
        return self._options['module_name']

    @property
    def definition_id(self) -> str:
        return self._definition_id

    @property
    def registry(self) -> ModelViewRegistry:
        return self._registry

    @property
    def options(self) -> Mapping[str, Any]:
        """Read-only view of the normalized options."""
        return self._options

    # =========================================================================
    # Instances
    # =========================================================================

    def __call__(self, *args: Any) -> ModelViewInstance:
        """
        Create an instance of this model view.

        Args:
            *args: Nothing, a single mapping of parameters, or one or more
                property names

        Returns:
            New ModelViewInstance

        Raises:
            InvalidArgumentError: If the arguments have any other shape
        """
        return self.instantiate(parse_instance_args(*args))

    def instantiate(self, view_args: ViewArgs) -> ModelViewInstance:
        """
        Create an instance of this model view from parsed arguments.

        Args:
            view_args: NamedConfig or PropertyList

        Returns:
            New ModelViewInstance with instance_id set
        """
        if isinstance(view_args, NamedConfig):
            # detached from the caller so args always match instance_id
            args = copy.deepcopy(dict(view_args.values))
        elif isinstance(view_args, PropertyList):
            args = {'properties': list(view_args.properties)}
        else:
            raise InvalidArgumentError(f"invalid model view arguments {view_args!r}")

        instance_id = stable_id({
            'args': args,
            'definition_id': self.definition_id,
            'name': self.name,
        })

        instance = ModelViewInstance(
            **self._options,
            definition_id=self.definition_id,
            args=args,
            instance_id=instance_id,
            definition=self,
        )

        logger.debug(f"Created {self.name} instance {instance_id}")
        self._hooks.trigger('view.instantiated', instance)
        return instance

    # =========================================================================
    # Display
    # =========================================================================

    def describe(self) -> Dict[str, Any]:
        """
        Plain dictionary description of the definition.

        Callbacks are given by name so the result can be dumped as JSON or YAML.
        """
        description = {
            key: value for key, value in self._options.items()
            if key not in CALLBACKS
        }
        for callback in CALLBACKS:
            description[callback] = _callable_name(self._options[callback])
        description['definition_id'] = self.definition_id
        return description

    def __repr__(self):
        return f"<ModelView(name='{self.name}', type='{self.type}', id={self.definition_id})>"


def is_model_view(obj: Any) -> bool:
    """Check whether obj is a model view definition."""
    return isinstance(obj, ModelView)
