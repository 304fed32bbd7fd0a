"""Map free-form quartile labels onto the four canonical PBB quartiles."""

from __future__ import annotations

from typing import Any

QUARTILES: tuple[str, ...] = (
    "1st Quartile",
    "2nd Quartile",
    "3rd Quartile",
    "4th Quartile",
)

# Checked in order; first match wins.
_CODES = {"1": QUARTILES[0], "2": QUARTILES[1], "3": QUARTILES[2], "4": QUARTILES[3]}
_PHRASES = (
    ("most aligned", QUARTILES[0]),
    ("more aligned", QUARTILES[1]),
    ("less aligned", QUARTILES[2]),
    ("least aligned", QUARTILES[3]),
)
_ORDINALS = (
    ("1st", QUARTILES[0]),
    ("2nd", QUARTILES[1]),
    ("3rd", QUARTILES[2]),
    ("4th", QUARTILES[3]),
)


def _label_text(label: Any) -> str:
    # Spreadsheet cells often come back as 1.0 for a typed "1"
    if isinstance(label, float) and label.is_integer():
        label = int(label)
    return str(label).strip().lower()


def normalize_quartile(label: Any) -> Any:
    """Return the canonical quartile for a raw label.

    Blank or missing labels give ``None``. Labels that match no rule are
    returned unchanged, so downstream rollups simply don't count them.
    """
    if label is None:
        return None
    text = _label_text(label)
    if not text:
        return None

    if text in _CODES:
        return _CODES[text]
    for phrase, quartile in _PHRASES:
        if phrase in text:
            return quartile
    for ordinal, quartile in _ORDINALS:
        if ordinal in text:
            return quartile
    return label
