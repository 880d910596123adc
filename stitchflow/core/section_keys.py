"""Canonical section identity for order item pieces and add-ons."""
from typing import Dict, Iterable, Optional


def normalize_section_key(name: Optional[str]) -> str:
    """Section names compare case-insensitively: ' Shirt ' and 'shirt' are one section."""
    return (name or "").strip().lower()


def derive_section_keys(
    included_items: Optional[Iterable[dict]],
    selected_add_ons: Optional[Iterable[dict]],
) -> Dict[str, str]:
    """
    Build the ordered ``{section_key: display_name}`` map for an order item.

    Included pieces come first, then add-ons. Blank pieces are skipped and
    duplicates collapse onto the first spelling seen.
    """
    sections: Dict[str, str] = {}
    for entry in list(included_items or []) + list(selected_add_ons or []):
        piece = entry.get("piece") if isinstance(entry, dict) else entry
        key = normalize_section_key(piece)
        if key and key not in sections:
            sections[key] = piece.strip()
    return sections
