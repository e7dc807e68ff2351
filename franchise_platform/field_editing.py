"""
franchise_platform/field_editing.py
===================================
Inline field edit session: idle → editing → committing → idle, or editing →
idle on cancel.

Raw text is parsed through the field registry. Malformed text is dropped
without an error (the field simply shows its last valid value again).
A cancel always beats a commit that arrives right after it, e.g. an editor
that commits on blur after Escape was pressed.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Callable, Literal, Optional

from .types import FinancialFieldValue, PlanFinancialInputs
from .field_metadata import edit_buffer_text, get_field_meta, parse_field_input
from .provenance import get_field, reset_field_to_default, update_field_value, with_field

logger = logging.getLogger(__name__)

EditState = Literal["idle", "editing", "committing"]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FieldEditSession:
    def __init__(
        self,
        financial_inputs: Optional[PlanFinancialInputs],
        on_save: Callable[[PlanFinancialInputs], None],
        is_saving: Callable[[], bool] = lambda: False,
        clock: Callable[[], str] = _utc_now_iso,
    ):
        self.financial_inputs = financial_inputs
        self.on_save = on_save
        self.is_saving = is_saving
        self.clock = clock
        self.state: EditState = "idle"
        self.editing_field: Optional[str] = None
        self.edit_index: Optional[int] = None
        self.buffer = ""
        self._cancel_pending = False

    def sync(self, financial_inputs: Optional[PlanFinancialInputs]) -> None:
        """Point the session at the latest cached document."""
        self.financial_inputs = financial_inputs

    # ── buffered editing ─────────────────────────────────────────────────────

    def start_edit(
        self,
        category: str,
        field_name: str,
        field: Optional[FinancialFieldValue] = None,
        index: Optional[int] = None,
    ) -> bool:
        if self.is_saving():
            return False
        meta = get_field_meta(category, field_name)
        if meta is None:
            return False
        if field is None and self.financial_inputs is not None:
            field = get_field(self.financial_inputs, category, field_name, index)
        if field is None:
            return False
        self.editing_field = f"{category}.{field_name}"
        self.edit_index = index
        self.buffer = edit_buffer_text(field.current_value, meta.format)
        self._cancel_pending = False
        self.state = "editing"
        return True

    def set_buffer(self, text: str) -> None:
        if self.state == "editing":
            self.buffer = text

    def commit_edit(self) -> Optional[PlanFinancialInputs]:
        if self._cancel_pending or self.editing_field is None or self.financial_inputs is None:
            self._cancel_pending = False
            self._finish()
            return None
        category, field_name = self.editing_field.split(".", 1)
        meta = get_field_meta(category, field_name)
        parsed = parse_field_input(self.buffer, meta.format)
        if parsed is None:
            logger.debug("Discarding unparsable input for %s: %r", self.editing_field, self.buffer)
            self._finish()
            return None
        self.state = "committing"
        try:
            return self._save_if_changed(category, field_name, parsed, self.edit_index)
        finally:
            self._finish()

    def cancel_edit(self) -> None:
        self._finish()
        # consumed by the next commit_edit, cleared by start_edit
        self._cancel_pending = True

    def _finish(self) -> None:
        self.state = "idle"
        self.editing_field = None
        self.edit_index = None
        self.buffer = ""

    # ── direct updates (sliders, reset buttons) ──────────────────────────────

    def direct_update_field(
        self, category: str, field_name: str, value: float, index: Optional[int] = None
    ) -> Optional[PlanFinancialInputs]:
        if self.financial_inputs is None or self.is_saving():
            return None
        return self._save_if_changed(category, field_name, value, index)

    def reset_field(self, category: str, field_name: str, index: Optional[int] = None) -> Optional[PlanFinancialInputs]:
        if self.financial_inputs is None or self.is_saving():
            return None
        field = get_field(self.financial_inputs, category, field_name, index)
        if field is None:
            return None
        if not field.is_custom and field.current_value == field.default_value:
            return None
        updated = with_field(
            self.financial_inputs, category, field_name,
            reset_field_to_default(field, self.clock()), index,
        )
        self.on_save(updated)
        return updated

    def _save_if_changed(
        self, category: str, field_name: str, value: float, index: Optional[int]
    ) -> Optional[PlanFinancialInputs]:
        field = get_field(self.financial_inputs, category, field_name, index)
        if field is None or value == field.current_value:
            return None
        updated = with_field(
            self.financial_inputs, category, field_name,
            update_field_value(field, value, self.clock()), index,
        )
        self.on_save(updated)
        return updated
