"""
Expense type keys and their Arabic / English labels
"""
from __future__ import annotations
from typing import Dict, List

# Canonical keys in spreadsheet column order
EXPENSE_TYPES: List[str] = [
    "transportation",
    "fees",
    "tips",
    "office-supplies",
    "hospitality",
]

# Display labels (Arabic, as printed in the exported sheet headers)
EXPENSE_TYPE_LABELS: Dict[str, str] = {
    "transportation": "انتقالات",
    "fees": "رسوم",
    "tips": "اكراميات",
    "office-supplies": "أدوات مكتبية",
    "hospitality": "ضيافة",
}

EXPENSE_TYPE_LABELS_EN: Dict[str, str] = {
    "transportation": "Transportation",
    "fees": "Fees",
    "tips": "Tips",
    "office-supplies": "Office supplies",
    "hospitality": "Hospitality",
}

# Every known spelling -> canonical key. Lookups are done on the stripped,
# lower-cased label.
_VARIANTS: Dict[str, str] = {
    # English
    "transportation": "transportation",
    "transport": "transportation",
    "fees": "fees",
    "fee": "fees",
    "tips": "tips",
    "tip": "tips",
    "office-supplies": "office-supplies",
    "office supplies": "office-supplies",
    "office_supplies": "office-supplies",
    "officesupplies": "office-supplies",
    "hospitality": "hospitality",
    # Arabic
    "انتقالات": "transportation",
    "مواصلات": "transportation",
    "رسوم": "fees",
    "اكراميات": "tips",
    "إكراميات": "tips",
    "أدوات مكتبية": "office-supplies",
    "ادوات مكتبية": "office-supplies",
    "ضيافة": "hospitality",
    "ضيافه": "hospitality",
}


def expense_type_variants() -> Dict[str, str]:
    """All known label spellings mapped to their canonical key"""
    return dict(_VARIANTS)


def normalize_expense_type(label: str) -> str:
    """Map a display label or variant spelling to its canonical key.
    Unknown labels are returned unchanged."""
    if label is None:
        return ""
    key = " ".join(str(label).split()).lower()
    return _VARIANTS.get(key, str(label).strip())


def is_known_type(expense_type: str) -> bool:
    return expense_type in EXPENSE_TYPE_LABELS


def expense_type_label(expense_type: str) -> str:
    """Arabic display label for a canonical key (unknown keys are shown as-is)"""
    return EXPENSE_TYPE_LABELS.get(expense_type, expense_type)
