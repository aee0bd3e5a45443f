"""
Stable identity hashing for model views.

Values are first canonicalized into a JSON-compatible form (sorted mapping
keys, callables replaced by their source text and meta data) and the canonical
JSON string is hashed. The same content always produces the same id regardless
of dict insertion order or of which process computed it.
"""

import dataclasses
import hashlib
import inspect
import json
import math
import textwrap
from typing import Any, Callable, Dict, Optional

ID_LENGTH = 32


def callable_source(fn: Callable) -> str:
    """
    Get the source text of a callable.

    Wrappers created with functools.wraps are followed to the function they
    wrap. Indentation is removed so that a function defined inside a class or
    another function hashes the same as its top level twin.

    Args:
        fn: Function, method or other callable

    Returns:
        str: Dedented source text, or a bytecode based fallback when the
        source is not available (builtins, functions defined in a REPL).
    """
    try:
        return textwrap.dedent(inspect.getsource(fn))
    except (OSError, TypeError):
        pass

    code = getattr(inspect.unwrap(fn), '__code__', None)
    if code is None:
        return f"{getattr(fn, '__module__', '')}.{getattr(fn, '__qualname__', repr(type(fn)))}"

    consts = [c for c in code.co_consts if not inspect.iscode(c)]
    return f"{code.co_code.hex()}|{consts!r}|{code.co_names!r}"


def canonicalize_callable(fn: Callable) -> Dict[str, Any]:
    """
    Canonical form of a callable: its source and attached meta data.

    Args:
        fn: Callable to describe

    Returns:
        Dict with 'function' (source text) and 'meta' keys
    """
    meta = getattr(fn, 'meta', None)
    return {
        'function': callable_source(fn),
        'meta': canonicalize(meta) if meta is not None else None,
    }


def _sort_key(item: Any) -> str:
    return json.dumps(item, sort_keys=True)


def _escape_key(key: str) -> str:
    # keys starting with $ are reserved for type tags
    return f"${key}" if key.startswith('$') else key


def canonicalize(value: Any, _seen: Optional[set] = None) -> Any:
    """
    Convert a structured value into a canonical JSON-compatible value.

    Strings, booleans, integers, finite floats and None pass through. Lists
    and tuples become lists. Anything JSON cannot represent directly is
    tagged, so it never collides with plain data:

        {'$set': [...]}           sets, sorted
        {'$map': [[k, v], ...]}   mappings with any non-string key, sorted
        {'$bytes': hex}
        {'$float': 'nan'}         NaN and infinities
        {'$callable': {function, meta}}
        {'$dataclass': {type, fields}}
        {'$repr': 'Type:repr'}    anything else

    String keys that start with ``$`` are escaped with a second ``$``. The
    input is never modified.

    Args:
        value: Arbitrary finite value

    Returns:
        JSON-compatible value

    Raises:
        ValueError: If the value contains a reference cycle
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else {'$float': repr(value)}
    if isinstance(value, (bytes, bytearray)):
        return {'$bytes': bytes(value).hex()}

    if _seen is None:
        _seen = set()
    marker = id(value)
    if marker in _seen:
        raise ValueError("Cannot compute stable id of a value with a reference cycle")

    if callable(value) and not isinstance(value, type):
        return {'$callable': canonicalize_callable(value)}

    _seen.add(marker)
    try:
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
            return {'$dataclass': {
                'type': type(value).__qualname__,
                'fields': canonicalize(fields, _seen),
            }}
        if isinstance(value, dict) or hasattr(value, 'items'):
            if all(isinstance(k, str) for k in value.keys()):
                return {_escape_key(k): canonicalize(v, _seen) for k, v in value.items()}
            pairs = [[canonicalize(k, _seen), canonicalize(v, _seen)] for k, v in value.items()]
            return {'$map': sorted(pairs, key=_sort_key)}
        if isinstance(value, (list, tuple)):
            return [canonicalize(v, _seen) for v in value]
        if isinstance(value, (set, frozenset)):
            return {'$set': sorted((canonicalize(v, _seen) for v in value), key=_sort_key)}
        return {'$repr': f"{type(value).__qualname__}:{value!r}"}
    finally:
        _seen.discard(marker)


def canonical_json(value: Any) -> str:
    """Serialize a value to its canonical JSON string."""
    return json.dumps(
        canonicalize(value),
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    )


def stable_id(value: Any) -> str:
    """
    Generate a stable hash id for a structured value.

    Args:
        value: Any finite, acyclic value

    Returns:
        str: 32 character lowercase hexadecimal id
    """
    hash_obj = hashlib.sha256(canonical_json(value).encode('utf-8'))
    return hash_obj.hexdigest()[:ID_LENGTH]
