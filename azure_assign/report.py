"""Console report of reconciled modifications."""

import sys
from typing import List, TextIO

from azure_assign.models import Modification, RoleAssignment


def _role_name(assignment: RoleAssignment) -> str:
    return assignment.role.role_value or assignment.role.role_id


def _group_name(assignment: RoleAssignment) -> str:
    return assignment.group.group_display_name or assignment.group.group_id


def format_modifications(modifications: List[Modification], dry_run: bool = False) -> List[str]:
    """
    Render one line per addition or deletion, or one line per unchanged application.

    Args:
        modifications: Reconciled modifications
        dry_run: Prefix lines to show nothing was applied

    Returns:
        Report lines
    """
    prefix = '[dry-run] ' if dry_run else ''
    lines = []
    for m in modifications:
        if m.is_empty:
            lines.append(f"{prefix}No modifications required for the '{m.display_name}' application.")
            continue
        for a in m.additions:
            lines.append(f"{prefix}Assigning the '{_role_name(a)}' role to the "
                         f"'{_group_name(a)}' group for the '{m.display_name}' application.")
        for d in m.deletions:
            lines.append(f"{prefix}Removing the '{_role_name(d)}' role from the "
                         f"'{_group_name(d)}' group for the '{m.display_name}' application.")
    return lines


def print_modifications(modifications: List[Modification], stream: TextIO = None,
                        dry_run: bool = False) -> None:
    stream = stream or sys.stdout
    for line in format_modifications(modifications, dry_run=dry_run):
        print(line, file=stream)
