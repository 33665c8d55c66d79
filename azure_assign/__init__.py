"""
Azure Assign - Reconcile application role assignments for directory groups.

This package reads a declared set of group-to-role assignments, compares it
with the app role assignments recorded in Azure Active Directory and applies
the additions and deletions needed to converge the two.
"""

__version__ = "1.0.0"
__author__ = "Azure Assign Team"
