"""
Data model for role assignment reconciliation.

Required assignments come from configuration, assigned ones are read from the
directory. Both sides share the same types; only assigned roles carry an
``assignment_id``.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple


@dataclass(frozen=True)
class Role:
    """An application role, optionally bound to an existing assignment."""

    role_id: str
    role_value: Optional[str] = None
    assignment_id: Optional[str] = None


@dataclass(frozen=True)
class Group:
    """A directory group."""

    group_id: str
    group_display_name: Optional[str] = None


@dataclass
class GroupAssignmentSet:
    """Roles held by (or wanted for) one group. Role ids are unique."""

    group_id: str
    group_display_name: Optional[str] = None
    roles: List[Role] = field(default_factory=list)

    def add_role(self, role: Role) -> bool:
        """
        Append a role unless one with the same id is already present.

        Returns:
            True if the role was added
        """
        if any(existing.role_id == role.role_id for existing in self.roles):
            return False
        self.roles.append(role)
        return True

    @property
    def group(self) -> Group:
        return Group(self.group_id, self.group_display_name)


@dataclass
class ApplicationDescriptor:
    """
    Required and assigned state for one application.

    ``resource_id`` is the object id of the application's service principal
    and ``roles`` maps role ids to role values.
    """

    client_id: str
    display_name: str
    resource_id: str
    roles: Dict[str, str] = field(default_factory=dict)
    required: List[GroupAssignmentSet] = field(default_factory=list)
    assigned: List[GroupAssignmentSet] = field(default_factory=list)


@dataclass(frozen=True)
class RoleAssignment:
    """A (group, role) pair to add or delete."""

    group: Group
    role: Role

    @property
    def key(self) -> Tuple[str, str]:
        return (self.group.group_id, self.role.role_id)


@dataclass
class Modification:
    """Additions and deletions needed to reconcile one application."""

    client_id: str
    display_name: str
    resource_id: str
    additions: List[RoleAssignment] = field(default_factory=list)
    deletions: List[RoleAssignment] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.additions and not self.deletions


@dataclass
class OperationResult:
    """Outcome of one create or delete call against the directory."""

    action: str
    assignment: RoleAssignment
    succeeded: bool
    error: Optional[Exception] = None


@dataclass(frozen=True)
class AppRole:
    role_id: str
    value: str


@dataclass
class ServicePrincipal:
    """Directory service principal with its declared app roles."""

    app_id: str
    object_id: str
    display_name: str
    app_roles: List[AppRole] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServicePrincipal':
        """Build from a directory JSON object."""
        app_roles = [
            AppRole(role_id=role['id'], value=role.get('value'))
            for role in data.get('appRoles') or []
        ]
        return cls(
            app_id=data.get('appId', ''),
            object_id=data.get('objectId', data.get('id', '')),
            display_name=data.get('displayName', ''),
            app_roles=app_roles,
        )


@dataclass(frozen=True)
class AppRoleAssignmentRecord:
    """One entry of a service principal's appRoleAssignedTo collection."""

    object_type: str
    principal_type: str
    principal_id: str
    principal_display_name: Optional[str]
    role_id: str
    object_id: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppRoleAssignmentRecord':
        # the role id is exposed as "id" on AAD Graph
        return cls(
            object_type=data.get('objectType', ''),
            principal_type=data.get('principalType', ''),
            principal_id=data.get('principalId', ''),
            principal_display_name=data.get('principalDisplayName'),
            role_id=data.get('id', ''),
            object_id=data.get('objectId', ''),
        )

    @property
    def is_group_assignment(self) -> bool:
        return self.object_type == 'AppRoleAssignment' and self.principal_type == 'Group'
