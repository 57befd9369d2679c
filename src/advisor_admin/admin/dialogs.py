"""Per-entity dialog state machine.

One explicit value replaces the scattered "is open / is editing / is saving"
flags of a form-heavy admin view, so illegal combinations (two dialogs open,
editing while creating) cannot be represented.

Transitions::

    CLOSED -> OPEN_FOR_CREATE -> SUBMITTING -> CLOSED | OPEN_FOR_CREATE(error)
    CLOSED -> OPEN_FOR_EDIT(record) -> SUBMITTING -> CLOSED | OPEN_FOR_EDIT(error)
    OPEN_FOR_* -> CLOSED (cancel)
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.advisor_admin.sync.schemas import GatewayError, Record


class DialogMode(str, Enum):
    CLOSED = "closed"
    OPEN_FOR_CREATE = "open_for_create"
    OPEN_FOR_EDIT = "open_for_edit"
    SUBMITTING = "submitting"


# ── Dialog Transition Rules ─────────────────────────────────────────────────

# Maps each mode to the set of modes it can transition TO.
VALID_TRANSITIONS: dict[DialogMode, set[DialogMode]] = {
    DialogMode.CLOSED: {DialogMode.OPEN_FOR_CREATE, DialogMode.OPEN_FOR_EDIT},
    DialogMode.OPEN_FOR_CREATE: {DialogMode.SUBMITTING, DialogMode.CLOSED},
    DialogMode.OPEN_FOR_EDIT: {DialogMode.SUBMITTING, DialogMode.CLOSED},
    DialogMode.SUBMITTING: {
        DialogMode.CLOSED,
        # Failure returns to the mode the submission came from
        DialogMode.OPEN_FOR_CREATE,
        DialogMode.OPEN_FOR_EDIT,
    },
}


class InvalidDialogTransition(ValueError):
    """Raised when a dialog transition violates the transition rules."""

    def __init__(self, from_mode: DialogMode, to_mode: DialogMode) -> None:
        self.from_mode = from_mode
        self.to_mode = to_mode
        allowed = ", ".join(sorted(m.value for m in VALID_TRANSITIONS.get(from_mode, set())))
        super().__init__(
            f"Invalid dialog transition: {from_mode.value} -> {to_mode.value}. "
            f"Allowed transitions from {from_mode.value}: {allowed}"
        )


class DialogState(BaseModel):
    """Immutable dialog value; each transition returns a new state.

    ``record`` is the record being edited (OPEN_FOR_EDIT and its SUBMITTING
    phase). ``draft`` holds the submitted field values so a failed
    submission reopens with the operator's input intact. ``origin`` records
    which open mode a SUBMITTING state came from.
    """

    model_config = ConfigDict(frozen=True)

    mode: DialogMode = DialogMode.CLOSED
    record: Record | None = None
    draft: dict[str, Any] | None = None
    origin: DialogMode | None = None
    error: GatewayError | None = None

    @property
    def is_open(self) -> bool:
        return self.mode is not DialogMode.CLOSED

    @property
    def is_editing(self) -> bool:
        return self.mode is DialogMode.OPEN_FOR_EDIT or (
            self.mode is DialogMode.SUBMITTING and self.origin is DialogMode.OPEN_FOR_EDIT
        )

    def _check(self, to_mode: DialogMode) -> None:
        if to_mode not in VALID_TRANSITIONS[self.mode]:
            raise InvalidDialogTransition(self.mode, to_mode)

    def open_for_create(self) -> DialogState:
        self._check(DialogMode.OPEN_FOR_CREATE)
        return DialogState(mode=DialogMode.OPEN_FOR_CREATE)

    def open_for_edit(self, record: Record) -> DialogState:
        self._check(DialogMode.OPEN_FOR_EDIT)
        return DialogState(mode=DialogMode.OPEN_FOR_EDIT, record=record)

    def submit(self, draft: dict[str, Any]) -> DialogState:
        self._check(DialogMode.SUBMITTING)
        return DialogState(
            mode=DialogMode.SUBMITTING, record=self.record, draft=draft, origin=self.mode
        )

    def succeed(self) -> DialogState:
        self._check(DialogMode.CLOSED)
        return DialogState()

    def fail(self, error: GatewayError) -> DialogState:
        """Return to the originating open mode, keeping the draft and the error."""
        if self.mode is not DialogMode.SUBMITTING or self.origin is None:
            raise InvalidDialogTransition(self.mode, self.origin or DialogMode.OPEN_FOR_CREATE)
        return DialogState(mode=self.origin, record=self.record, draft=self.draft, error=error)

    def cancel(self) -> DialogState:
        self._check(DialogMode.CLOSED)
        if self.mode is DialogMode.SUBMITTING:
            # A submission in flight cannot be cancelled from the dialog
            raise InvalidDialogTransition(self.mode, DialogMode.CLOSED)
        return DialogState()
