"""
Service layer for imagebump.

Services orchestrate domain objects and infrastructure:
- rewrite: Pure reference rewriting of a loaded manifest
- ChangePublisher: Commit and push with conflict/network retry
- UpdateService: The load -> rewrite -> persist -> publish transaction
"""

from .rewriter import rewrite
from .publisher import ChangePublisher, PendingChange
from .update_service import UpdateService, PlannedRewrite

__all__ = [
    'rewrite',
    'ChangePublisher',
    'PendingChange',
    'UpdateService',
    'PlannedRewrite',
]
