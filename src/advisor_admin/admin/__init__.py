"""Admin console layer -- per-entity view controllers, dialogs and forms.

- AdminConsole: builds the sync stack from settings and holds controllers
- AdminViewController: filter state, selection, dialogs and CRUD actions
- DialogState: explicit Closed / OpenForCreate / OpenForEdit / Submitting machine
- FORMS: pydantic form models validated before any mutation is sent
"""

from src.advisor_admin.admin.console import AdminConsole
from src.advisor_admin.admin.controller import AdminViewController
from src.advisor_admin.admin.dialogs import (
    DialogMode,
    DialogState,
    InvalidDialogTransition,
)
from src.advisor_admin.admin.forms import FORMS, validate_create, validate_update
from src.advisor_admin.admin.notifications import (
    Notification,
    NotificationKind,
    NotificationLog,
    log_notifier,
)

__all__ = [
    "AdminConsole",
    "AdminViewController",
    "DialogMode",
    "DialogState",
    "InvalidDialogTransition",
    "FORMS",
    "validate_create",
    "validate_update",
    "Notification",
    "NotificationKind",
    "NotificationLog",
    "log_notifier",
]
