"""
Panel services built on the collection store.

- AccountService: registration, login, plan expiry and editor trial
- ProjectService: deploy, editor, maintenance/archive and delete
- BillingService: plans, payment requests and payment methods
- HostedFileWriter: the single write path for hosted files
"""

from .accounts import AccountService, TrialStatus
from .billing import BillingService, normalize_plans, plan_limit, tier_for_label
from .files import HostedFileWriter, is_html_file
from .projects import (
    DeleteReport,
    ProjectAction,
    ProjectDetails,
    ProjectService,
    resolve_editor_path,
)

__all__ = [
    "AccountService",
    "TrialStatus",
    "BillingService",
    "normalize_plans",
    "plan_limit",
    "tier_for_label",
    "HostedFileWriter",
    "is_html_file",
    "ProjectService",
    "ProjectAction",
    "ProjectDetails",
    "DeleteReport",
    "resolve_editor_path",
]
