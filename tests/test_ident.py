"""
Tests for stable identity hashing.

Tests focus on the id contract: determinism, order independence and
sensitivity to any change of content, including callback bodies.
"""

import copy
import re

import pytest

from modelview import ident


def _make_each_v1():
    def each(context, record, index):
        context['n'] += 1
    return each


def _make_each_v2():
    def each(context, record, index):
        context['n'] += 2
    return each


class TestStableId:
    """Test stable_id behavior."""

    def test_returns_32_hex_characters(self):
        """Ids should be fixed length lowercase hex."""
        result = ident.stable_id({'a': 1})
        assert re.fullmatch(r'[a-f0-9]{32}', result)

    def test_same_value_same_id(self):
        """Identical values should hash identically."""
        value = {'name': 'sum', 'args': {'properties': ['a', 'b']}}
        assert ident.stable_id(value) == ident.stable_id(copy.deepcopy(value))

    def test_independent_of_key_order(self):
        """Mapping insertion order should not matter, at any depth."""
        first = {'a': 1, 'b': {'x': 1, 'y': [1, 2]}}
        second = {'b': {'y': [1, 2], 'x': 1}, 'a': 1}
        assert ident.stable_id(first) == ident.stable_id(second)

    def test_sequence_order_matters(self):
        """Lists are ordered; reordering should change the id."""
        assert ident.stable_id({'p': ['a', 'b']}) != ident.stable_id({'p': ['b', 'a']})

    def test_different_values_different_ids(self):
        """Any content difference should change the id."""
        assert ident.stable_id({'a': 1}) != ident.stable_id({'a': 2})
        assert ident.stable_id({'a': 1}) != ident.stable_id({'b': 1})

    def test_bool_and_int_differ(self):
        """True and 1 are different content."""
        assert ident.stable_id({'a': True}) != ident.stable_id({'a': 1})

    def test_sets_are_order_independent(self):
        """Sets should hash the same regardless of construction order."""
        assert ident.stable_id({'s': {3, 1, 2}}) == ident.stable_id({'s': {2, 3, 1}})

    def test_tuple_and_list_are_equivalent(self):
        """Tuples canonicalize to lists."""
        assert ident.stable_id(('a', 'b')) == ident.stable_id(['a', 'b'])

    def test_does_not_mutate_input(self):
        """Hashing should leave the input untouched."""
        value = {'b': [3, 2, 1], 'a': {'z': 1, 'y': 2}}
        snapshot = copy.deepcopy(value)
        ident.stable_id(value)
        assert value == snapshot
        assert list(value) == ['b', 'a']

    def test_cycle_raises_value_error(self):
        """Cyclic values cannot be hashed."""
        value = {'a': []}
        value['a'].append(value)
        with pytest.raises(ValueError):
            ident.stable_id(value)

    def test_shared_reference_is_not_a_cycle(self):
        """The same object appearing twice is not a cycle."""
        shared = {'x': 1}
        assert ident.stable_id({'a': shared, 'b': shared}) == ident.stable_id({'a': {'x': 1}, 'b': {'x': 1}})


class TestCallableIdentity:
    """Test how callables contribute to ids."""

    def test_same_source_same_id(self):
        """Functions with identical source hash identically."""
        assert ident.stable_id({'each': _make_each_v1()}) == ident.stable_id({'each': _make_each_v1()})

    def test_single_character_change_changes_id(self):
        """A one character change in the body should change the id."""
        assert ident.stable_id({'each': _make_each_v1()}) != ident.stable_id({'each': _make_each_v2()})

    def test_canonical_form_has_function_and_meta(self):
        """Callables canonicalize to their source and meta data."""
        each = _make_each_v1()
        result = ident.canonicalize_callable(each)
        assert result['function'].startswith('def each(context, record, index):')
        assert result['meta'] is None

    def test_meta_changes_id(self):
        """Attached meta data is part of the callable's identity."""
        plain = _make_each_v1()
        tagged = _make_each_v1()
        tagged.meta = {'name': 'sumModelView.each'}
        assert ident.stable_id(plain) != ident.stable_id(tagged)

    def test_source_is_dedented(self):
        """Nested function source should not carry its indentation."""
        source = ident.callable_source(_make_each_v1())
        assert not source.startswith(' ')

    def test_builtin_without_source(self):
        """Callables without source still produce a stable id."""
        assert ident.stable_id(len) == ident.stable_id(len)
        assert ident.stable_id(len) != ident.stable_id(abs)


class TestTypeTagging:
    """Values JSON cannot represent directly never collide with plain data."""

    def test_int_and_string_keys_differ(self):
        assert ident.stable_id({1: 'x'}) != ident.stable_id({'1': 'x'})

    def test_mixed_keys_are_order_independent(self):
        assert ident.stable_id({1: 'a', 'b': 2}) == ident.stable_id({'b': 2, 1: 'a'})

    def test_bytes_and_hex_string_differ(self):
        assert ident.stable_id({'v': b'ab'}) != ident.stable_id({'v': '6162'})

    def test_bytes_and_tagged_mapping_differ(self):
        assert ident.stable_id(b'ab') != ident.stable_id({'$bytes': '6162'})

    def test_nan_and_string_differ(self):
        assert ident.stable_id(float('nan')) != ident.stable_id('nan')
        assert ident.stable_id(float('inf')) != ident.stable_id(float('-inf'))

    def test_repr_fallback_and_string_differ(self):
        value = complex(1, 2)
        assert ident.stable_id(value) != ident.stable_id(repr(value))
        assert ident.stable_id(value) == ident.stable_id(complex(1, 2))

    def test_set_and_list_differ(self):
        assert ident.stable_id({1, 2}) != ident.stable_id([1, 2])

    def test_callable_and_lookalike_mapping_differ(self):
        each = _make_each_v1()
        lookalike = ident.canonicalize_callable(each)
        assert ident.stable_id(each) != ident.stable_id(lookalike)

    def test_dollar_keys_are_escaped(self):
        assert ident.canonicalize({'$set': [1]}) == {'$$set': [1]}
        assert ident.canonicalize({1}) == {'$set': [1]}
