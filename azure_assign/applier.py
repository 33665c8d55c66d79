"""
Application of modifications to the directory.

Additions and deletions of a modification are issued concurrently on a thread
pool. A failed operation is recorded in its result and never stops sibling
operations; nothing is rolled back.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from azure_assign.graph_client import DirectoryClient
from azure_assign.models import Modification, OperationResult, RoleAssignment

logger = logging.getLogger(__name__)

ADD = 'add'
DELETE = 'delete'


class ApplyError(Exception):
    """Raised (and recorded) when a create or delete operation fails."""

    def __init__(self, action: str, assignment: RoleAssignment, application: str,
                 cause: Exception):
        self.action = action
        self.assignment = assignment
        self.application = application
        self.cause = cause
        verb = 'assign' if action == ADD else 'remove'
        role = assignment.role.role_value or assignment.role.role_id
        group = assignment.group.group_display_name or assignment.group.group_id
        super().__init__(f"Failed to {verb} the '{role}' role for the '{group}' group "
                         f"in the '{application}' application: {cause}")


class ChangeApplier:
    """Issues create and delete calls for reconciled modifications."""

    def __init__(self, directory: DirectoryClient, max_workers: int = 8):
        """
        Initialize change applier.

        Args:
            directory: Directory client performing the calls
            max_workers: Maximum concurrent operations per modification
        """
        self.directory = directory
        self.max_workers = max(1, max_workers)

    def apply(self, modification: Modification) -> List[OperationResult]:
        """
        Apply one modification and wait for every operation to finish.

        Returns:
            One result per operation, additions first, in modification order
        """
        if modification.is_empty:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(self._add, modification, assignment)
                for assignment in modification.additions
            ]
            futures.extend(
                executor.submit(self._delete, modification, assignment)
                for assignment in modification.deletions
            )
            results = [future.result() for future in futures]

        failed = sum(1 for result in results if not result.succeeded)
        logger.info(f"Applied {len(results) - failed}/{len(results)} operations "
                    f"for {modification.display_name}")
        return results

    def apply_all(self, modifications: List[Modification]) -> Dict[str, List[OperationResult]]:
        """
        Apply several modifications concurrently.

        Returns:
            Results keyed by resource id
        """
        pending = [m for m in modifications if not m.is_empty]
        if not pending:
            return {}

        with ThreadPoolExecutor(max_workers=min(len(pending), self.max_workers)) as executor:
            futures = {m.resource_id: executor.submit(self.apply, m) for m in pending}
            return {resource_id: future.result() for resource_id, future in futures.items()}

    def _add(self, modification: Modification, assignment: RoleAssignment) -> OperationResult:
        try:
            self.directory.create_assignment(
                modification.resource_id,
                assignment.group.group_id,
                assignment.role.role_id
            )
            return OperationResult(ADD, assignment, True)
        except Exception as e:
            error = ApplyError(ADD, assignment, modification.display_name, e)
            logger.error(str(error))
            return OperationResult(ADD, assignment, False, error)

    def _delete(self, modification: Modification, assignment: RoleAssignment) -> OperationResult:
        try:
            self.directory.delete_assignment(
                assignment.group.group_id,
                assignment.role.assignment_id
            )
            return OperationResult(DELETE, assignment, True)
        except Exception as e:
            error = ApplyError(DELETE, assignment, modification.display_name, e)
            logger.error(str(error))
            return OperationResult(DELETE, assignment, False, error)


def first_error(results: List[OperationResult]) -> Optional[ApplyError]:
    """Return the error of the first failed operation, if any."""
    for result in results:
        if not result.succeeded:
            return result.error
    return None
