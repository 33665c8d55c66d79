"""
Application descriptor construction.

Combines the configured applications with the directory's service principals
and current role assignments into one ApplicationDescriptor per application.
Every lookup failure is raised before any change is made to the directory.
"""

import logging
from typing import Dict, List, Any

from azure_assign.graph_client import DirectoryClient
from azure_assign.models import (
    ApplicationDescriptor,
    GroupAssignmentSet,
    Role,
    ServicePrincipal,
    AppRoleAssignmentRecord,
)

logger = logging.getLogger(__name__)


class ServicePrincipalLookupError(LookupError):
    """Raised when no service principal matches a configured client id."""

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"{client_id}: No service principal found for application")


class UnknownRoleError(Exception):
    """Raised when a configured role value is not declared by the application."""

    def __init__(self, role_value: str, application: str):
        self.role_value = role_value
        self.application = application
        super().__init__(f"{role_value}: No such role in {application}")


class DescriptorBuilder:
    """
    Builds application descriptors from configuration and directory state.

    Reads happen in phases: service principals are passed in, groups are
    resolved per configured assignment, then current assignments are read per
    application.
    """

    def __init__(self, directory: DirectoryClient):
        self.directory = directory

    def build(self, applications: List[Dict[str, Any]],
              principals: List[ServicePrincipal]) -> List[ApplicationDescriptor]:
        """
        Build one descriptor per configured application, in configuration order.

        Raises:
            ServicePrincipalLookupError: If an application has no service principal
            UnknownRoleError: If a configured role is not declared by the application
            DirectoryRequestError: If a directory read fails
        """
        lookup = {sp.app_id: sp for sp in principals}

        descriptors = []
        for app in applications:
            principal = lookup.get(app['client_id'])
            if principal is None:
                raise ServicePrincipalLookupError(app['client_id'])
            descriptors.append(self.create_descriptor(app, principal))

        for descriptor in descriptors:
            records = self.directory.list_assigned_roles(descriptor.resource_id)
            descriptor.assigned = group_assigned_roles(records, descriptor.roles)

        return descriptors

    def create_descriptor(self, app: Dict[str, Any],
                          principal: ServicePrincipal) -> ApplicationDescriptor:
        """Create a descriptor holding the required assignments of one application."""
        role_ids = {}  # role value -> role id
        role_values = {}  # role id -> role value
        for role in principal.app_roles:
            role_ids[role.value] = role.role_id
            role_values[role.role_id] = role.value

        required: Dict[str, GroupAssignmentSet] = {}
        for entry in app.get('assignments', []):
            # Validate roles before touching the directory
            roles = []
            for value in entry.get('roles', []):
                role_id = role_ids.get(value)
                if role_id is None:
                    raise UnknownRoleError(value, principal.display_name)
                roles.append(Role(role_id=role_id, role_value=value))

            group_id = entry['group_id']
            group_set = required.get(group_id)
            if group_set is None:
                group = self.directory.get_group(group_id)
                group_set = GroupAssignmentSet(group.group_id, group.group_display_name)
                required[group_id] = group_set

            for role in roles:
                group_set.add_role(role)

        logger.debug(f"{principal.display_name}: {len(required)} groups required")

        return ApplicationDescriptor(
            client_id=principal.app_id,
            display_name=principal.display_name,
            resource_id=principal.object_id,
            roles=role_values,
            required=list(required.values()),
        )


def group_assigned_roles(records: List[AppRoleAssignmentRecord],
                         role_values: Dict[str, str]) -> List[GroupAssignmentSet]:
    """
    Group flat assignment records into one set per group, in first-seen order.

    Only group app role assignments are kept; each role carries the id of the
    assignment object so it can be deleted.
    """
    by_group_id: Dict[str, GroupAssignmentSet] = {}
    for record in records:
        if not record.is_group_assignment:
            continue
        group_set = by_group_id.get(record.principal_id)
        if group_set is None:
            group_set = GroupAssignmentSet(record.principal_id, record.principal_display_name)
            by_group_id[record.principal_id] = group_set
        added = group_set.add_role(Role(
            role_id=record.role_id,
            role_value=role_values.get(record.role_id),
            assignment_id=record.object_id,
        ))
        if not added:
            logger.warning(f"Ignoring duplicate assignment {record.object_id} of role "
                           f"{record.role_id} to group {record.principal_id}; "
                           f"it will not be reconciled")
    return list(by_group_id.values())


def build_descriptors(applications: List[Dict[str, Any]], principals: List[ServicePrincipal],
                      directory: DirectoryClient) -> List[ApplicationDescriptor]:
    """
    Convenience function to build descriptors.

    Args:
        applications: Configured applications (client_id and assignments)
        principals: Service principals listed from the directory
        directory: Directory client used to resolve groups and assignments

    Returns:
        List of application descriptors
    """
    return DescriptorBuilder(directory).build(applications, principals)
