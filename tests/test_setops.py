#!/usr/bin/env python3
"""
Unit tests for the generic difference and intersection helpers.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from azure_assign.models import Role, GroupAssignmentSet
from azure_assign.setops import difference, intersection, make_equals


class TestDifference(unittest.TestCase):
    """Test cases for difference()."""

    def test_plain_values(self):
        self.assertEqual(difference([1, 2, 3, 4], [2, 4]), [1, 3])

    def test_empty_inputs(self):
        self.assertEqual(difference([], [1]), [])
        self.assertEqual(difference([1, 2], []), [1, 2])

    def test_preserves_order_and_duplicates_of_first(self):
        self.assertEqual(difference(['b', 'a', 'b', 'c'], ['c']), ['b', 'a', 'b'])

    def test_attribute_key(self):
        """Elements match by the named attribute, not full equality."""
        a = [Role('r1', 'admin'), Role('r2', 'viewer')]
        b = [Role('r1', 'admin', assignment_id='A1')]

        result = difference(a, b, key='role_id')

        self.assertEqual(result, [Role('r2', 'viewer')])

    def test_key_function(self):
        a = [GroupAssignmentSet('G1', 'Admins'), GroupAssignmentSet('G2', 'Readers')]
        b = [GroupAssignmentSet('g1', 'ADMINS')]

        result = difference(a, b, key=lambda g: g.group_id.lower())

        self.assertEqual([g.group_id for g in result], ['G2'])

    def test_custom_predicate(self):
        result = difference([1, 2, 3, 10], [11], equals=lambda x, y: abs(x - y) <= 1)
        self.assertEqual(result, [1, 2, 3])

    def test_does_not_mutate_inputs(self):
        a = [1, 2, 3]
        b = [2]
        difference(a, b)
        self.assertEqual(a, [1, 2, 3])
        self.assertEqual(b, [2])


class TestIntersection(unittest.TestCase):
    """Test cases for intersection()."""

    def test_returns_pairs(self):
        required = [Role('r1', 'admin'), Role('r2', 'viewer')]
        assigned = [Role('r2', 'viewer', assignment_id='A2'), Role('r3', 'editor', assignment_id='A3')]

        pairs = intersection(required, assigned, key='role_id')

        self.assertEqual(len(pairs), 1)
        x, y = pairs[0]
        self.assertIsNone(x.assignment_id)
        self.assertEqual(y.assignment_id, 'A2')

    def test_order_follows_first_sequence(self):
        pairs = intersection([3, 1, 2], [1, 2, 3])
        self.assertEqual(pairs, [(3, 3), (1, 1), (2, 2)])

    def test_first_match_only(self):
        pairs = intersection(['a'], ['a', 'a'])
        self.assertEqual(pairs, [('a', 'a')])

    def test_no_matches(self):
        self.assertEqual(intersection([1, 2], [3, 4]), [])


class TestMakeEquals(unittest.TestCase):
    """Test cases for make_equals()."""

    def test_default_is_value_equality(self):
        eq = make_equals()
        self.assertTrue(eq('x', 'x'))
        self.assertFalse(eq('x', 'y'))

    def test_key_and_equals_are_exclusive(self):
        with self.assertRaises(ValueError):
            make_equals(key='role_id', equals=lambda x, y: True)


if __name__ == '__main__':
    unittest.main()
