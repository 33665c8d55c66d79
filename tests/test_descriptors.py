#!/usr/bin/env python3
"""
Unit tests for application descriptor construction.

The directory client is mocked; descriptors are built from configured
applications, service principals and assignment records.
"""

import os
import sys
import unittest
from unittest.mock import Mock

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from azure_assign.descriptors import (
    DescriptorBuilder,
    ServicePrincipalLookupError,
    UnknownRoleError,
    build_descriptors,
    group_assigned_roles,
)
from azure_assign.graph_client import DirectoryClient, DirectoryRequestError
from azure_assign.models import (
    AppRole,
    AppRoleAssignmentRecord,
    Group,
    Role,
    ServicePrincipal,
)


def record(principal_id, role_id, object_id, display_name=None,
           object_type='AppRoleAssignment', principal_type='Group'):
    return AppRoleAssignmentRecord(
        object_type=object_type,
        principal_type=principal_type,
        principal_id=principal_id,
        principal_display_name=display_name or principal_id,
        role_id=role_id,
        object_id=object_id,
    )


class TestDescriptorBuilder(unittest.TestCase):
    """Test cases for DescriptorBuilder."""

    def setUp(self):
        """Set up test fixtures."""
        self.principal = ServicePrincipal(
            app_id='client-1',
            object_id='sp-1',
            display_name='Payroll',
            app_roles=[AppRole('r-admin', 'admin'), AppRole('r-viewer', 'viewer')],
        )
        self.directory = Mock(spec=DirectoryClient)
        self.directory.get_group.side_effect = lambda group_id: Group(group_id, f"Group {group_id}")
        self.directory.list_assigned_roles.return_value = []

    def test_builds_required_side(self):
        applications = [{
            'client_id': 'client-1',
            'assignments': [
                {'group_id': 'G1', 'roles': ['admin', 'viewer']},
                {'group_id': 'G2', 'roles': ['viewer']},
            ]
        }]

        descriptors = build_descriptors(applications, [self.principal], self.directory)

        self.assertEqual(len(descriptors), 1)
        d = descriptors[0]
        self.assertEqual(d.client_id, 'client-1')
        self.assertEqual(d.display_name, 'Payroll')
        self.assertEqual(d.resource_id, 'sp-1')
        self.assertEqual(d.roles, {'r-admin': 'admin', 'r-viewer': 'viewer'})
        self.assertEqual([g.group_id for g in d.required], ['G1', 'G2'])
        self.assertEqual(d.required[0].group_display_name, 'Group G1')
        self.assertEqual(d.required[0].roles, [Role('r-admin', 'admin'), Role('r-viewer', 'viewer')])
        self.assertEqual(d.assigned, [])
        self.directory.list_assigned_roles.assert_called_once_with('sp-1')

    def test_builds_assigned_side(self):
        self.directory.list_assigned_roles.return_value = [
            record('G1', 'r-admin', 'A1', 'Admins'),
            record('G2', 'r-viewer', 'A2', 'Readers'),
            record('G1', 'r-viewer', 'A3', 'Admins'),
        ]
        applications = [{'client_id': 'client-1', 'assignments': []}]

        d = build_descriptors(applications, [self.principal], self.directory)[0]

        self.assertEqual([g.group_id for g in d.assigned], ['G1', 'G2'])
        self.assertEqual(d.assigned[0].roles, [
            Role('r-admin', 'admin', 'A1'),
            Role('r-viewer', 'viewer', 'A3'),
        ])
        self.assertEqual(d.assigned[1].group_display_name, 'Readers')

    def test_missing_service_principal(self):
        applications = [{'client_id': 'unknown-client', 'assignments': []}]

        with self.assertRaises(ServicePrincipalLookupError) as ctx:
            build_descriptors(applications, [self.principal], self.directory)

        self.assertIsInstance(ctx.exception, LookupError)
        self.assertEqual(ctx.exception.client_id, 'unknown-client')
        self.directory.list_assigned_roles.assert_not_called()

    def test_unknown_role(self):
        applications = [{
            'client_id': 'client-1',
            'assignments': [{'group_id': 'G1', 'roles': ['admin', 'superuser']}]
        }]

        with self.assertRaises(UnknownRoleError) as ctx:
            build_descriptors(applications, [self.principal], self.directory)

        self.assertEqual(ctx.exception.role_value, 'superuser')
        self.assertEqual(ctx.exception.application, 'Payroll')
        self.assertIn('superuser', str(ctx.exception))
        self.assertIn('Payroll', str(ctx.exception))
        self.directory.create_assignment.assert_not_called()
        self.directory.delete_assignment.assert_not_called()

    def test_duplicate_group_entries_are_merged(self):
        applications = [{
            'client_id': 'client-1',
            'assignments': [
                {'group_id': 'G1', 'roles': ['admin']},
                {'group_id': 'G1', 'roles': ['viewer', 'admin']},
            ]
        }]

        d = build_descriptors(applications, [self.principal], self.directory)[0]

        self.assertEqual(len(d.required), 1)
        self.assertEqual([r.role_id for r in d.required[0].roles], ['r-admin', 'r-viewer'])
        self.directory.get_group.assert_called_once_with('G1')

    def test_group_lookup_failure_propagates(self):
        self.directory.get_group.side_effect = DirectoryRequestError("HTTP 404", status_code=404)
        applications = [{
            'client_id': 'client-1',
            'assignments': [{'group_id': 'G404', 'roles': ['admin']}]
        }]

        with self.assertRaises(DirectoryRequestError):
            DescriptorBuilder(self.directory).build(applications, [self.principal])

    def test_applications_keep_configuration_order(self):
        other = ServicePrincipal('client-2', 'sp-2', 'Ledger', [AppRole('r-x', 'x')])
        applications = [
            {'client_id': 'client-2', 'assignments': []},
            {'client_id': 'client-1', 'assignments': []},
        ]

        descriptors = build_descriptors(applications, [self.principal, other], self.directory)

        self.assertEqual([d.display_name for d in descriptors], ['Ledger', 'Payroll'])


class TestGroupAssignedRoles(unittest.TestCase):
    """Test cases for group_assigned_roles()."""

    def test_ignores_non_group_assignments(self):
        records = [
            record('U1', 'r-admin', 'A1', principal_type='User'),
            record('SP1', 'r-admin', 'A2', principal_type='ServicePrincipal'),
            record('G1', 'r-admin', 'A3', object_type='DirectoryObject'),
            record('G2', 'r-admin', 'A4'),
        ]

        groups = group_assigned_roles(records, {'r-admin': 'admin'})

        self.assertEqual([g.group_id for g in groups], ['G2'])

    def test_unknown_role_id_has_no_value(self):
        groups = group_assigned_roles([record('G1', 'r-gone', 'A1')], {})
        self.assertEqual(groups[0].roles, [Role('r-gone', None, 'A1')])

    def test_duplicate_assignment_record_is_logged(self):
        records = [record('G1', 'r-admin', 'A1'), record('G1', 'r-admin', 'A2')]

        with self.assertLogs('azure_assign.descriptors', level='WARNING') as logs:
            groups = group_assigned_roles(records, {'r-admin': 'admin'})

        self.assertEqual(groups[0].roles, [Role('r-admin', 'admin', 'A1')])
        self.assertIn('duplicate assignment A2', logs.output[0])


if __name__ == '__main__':
    unittest.main()
