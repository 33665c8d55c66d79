"""
Reconciliation of required and assigned role assignments.

Given an application descriptor, works out which (group, role) pairs must be
assigned and which existing assignments must be removed. Pure computation:
no directory access and no mutation of the descriptor.
"""

import logging
from typing import List

from azure_assign.models import ApplicationDescriptor, Modification, RoleAssignment
from azure_assign.setops import difference, intersection

logger = logging.getLogger(__name__)


def reconcile(descriptor: ApplicationDescriptor) -> Modification:
    """
    Determine the additions and deletions for one application.

    Groups are partitioned by id into add-only, delete-only and shared groups.
    Shared groups are diffed by role id; roles present on both sides are left
    alone, so reconciling a converged descriptor yields nothing.

    Args:
        descriptor: Application descriptor with required and assigned sets

    Returns:
        Modification listing additions (no assignment id) and deletions
        (carrying the assigned-side assignment id)
    """
    required = descriptor.required
    assigned = descriptor.assigned

    additions: List[RoleAssignment] = []
    deletions: List[RoleAssignment] = []

    groups_to_add = difference(required, assigned, key='group_id')
    groups_to_delete = difference(assigned, required, key='group_id')
    groups_to_process = intersection(required, assigned, key='group_id')

    for group_set in groups_to_add:
        group = group_set.group
        additions.extend(RoleAssignment(group, role) for role in group_set.roles)

    for group_set in groups_to_delete:
        group = group_set.group
        deletions.extend(RoleAssignment(group, role) for role in group_set.roles)

    for required_set, assigned_set in groups_to_process:
        roles_to_add = difference(required_set.roles, assigned_set.roles, key='role_id')
        roles_to_delete = difference(assigned_set.roles, required_set.roles, key='role_id')

        additions.extend(RoleAssignment(required_set.group, role) for role in roles_to_add)
        deletions.extend(RoleAssignment(assigned_set.group, role) for role in roles_to_delete)

    logger.debug(f"{descriptor.display_name}: {len(additions)} additions, "
                 f"{len(deletions)} deletions")

    return Modification(
        client_id=descriptor.client_id,
        display_name=descriptor.display_name,
        resource_id=descriptor.resource_id,
        additions=additions,
        deletions=deletions,
    )


def reconcile_all(descriptors: List[ApplicationDescriptor]) -> List[Modification]:
    """Reconcile each descriptor, preserving order."""
    return [reconcile(descriptor) for descriptor in descriptors]
