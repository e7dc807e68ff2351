"""
franchise_platform/completeness.py
==================================
Section-level and overall plan completeness from field provenance.
"""
from __future__ import annotations
from typing import List

from .types import PlanFinancialInputs, SectionProgress, FieldEntry, FinancialFieldValue
from .field_metadata import FIELD_METADATA, CATEGORY_ORDER, CATEGORY_LABELS
from .formatting import round_half_up


def _is_edited(entry: FieldEntry) -> bool:
    # Per-year lists count as edited when Year 1 is overridden.
    if isinstance(entry, list):
        entry = entry[0] if entry else None
    return isinstance(entry, FinancialFieldValue) and entry.source != "brand_default"


def compute_section_progress(inputs: PlanFinancialInputs) -> List[SectionProgress]:
    sections = []
    for category in CATEGORY_ORDER:
        names = FIELD_METADATA[category].keys()
        data = inputs.category(category) or {}
        edited = sum(1 for name in names if name in data and _is_edited(data[name]))
        sections.append(SectionProgress(
            category=category, label=CATEGORY_LABELS[category], edited=edited, total=len(names),
        ))
    return sections


def compute_completeness(inputs: PlanFinancialInputs, startup_cost_count: int = 0) -> int:
    """
    Percentage (0-100) of fields edited away from brand defaults.
    Every startup cost line item counts as satisfied.
    """
    sections = compute_section_progress(inputs)
    items = max(startup_cost_count, 0)
    edited = sum(s.edited for s in sections) + items
    total = sum(s.total for s in sections) + items
    if total == 0:
        return 0
    return round_half_up(edited / total * 100)


def has_any_user_edits(inputs: PlanFinancialInputs) -> bool:
    return any(
        name in data and _is_edited(data[name])
        for category in CATEGORY_ORDER
        for data in [inputs.category(category) or {}]
        for name in FIELD_METADATA[category]
    )


def get_generate_button_label(completeness: int) -> str:
    if completeness < 50:
        return "Generate Draft"
    if completeness <= 90:
        return "Generate Package"
    return "Generate Lender Package"
