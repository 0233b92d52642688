"""
Guess which table column holds the business name, contact, address and reason.

The model is prompted to answer with Indonesian headers (Nama Bisnis, Kontak,
Alamat Lengkap, Alasan Prospek / Kategori/Catatan), so the patterns below
match that vocabulary and must stay in step with the prompts in
gemini_client.py.
"""
import re
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

ROLE_PATTERNS = {
    'name': re.compile(r'nama|bisnis|supplier', re.IGNORECASE),
    'contact': re.compile(r'kontak|telp|wa', re.IGNORECASE),
    'location': re.compile(r'lokasi|alamat', re.IGNORECASE),
    'reason': re.compile(r'alasan|prospek|kelebihan|catatan', re.IGNORECASE),
}

LINK_COLUMN_PATTERN = re.compile(r'maps|koordinat|link', re.IGNORECASE)

ROLE_PLACEHOLDERS = {
    'name': "Target",
    'contact': "-",
    'location': "-",
    'reason': "-",
}


@dataclass
class Lead:
    """A business picked from a result row"""
    name: str
    contact: str
    location: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class ColumnRoles:
    name: Optional[int] = None
    contact: Optional[int] = None
    location: Optional[int] = None
    reason: Optional[int] = None


def resolve_columns(header: List[str]) -> ColumnRoles:
    """Return the index of the first header cell matching each role"""
    found = {}
    for role, pattern in ROLE_PATTERNS.items():
        found[role] = next(
            (i for i, cell in enumerate(header) if pattern.search(cell or "")),
            None,
        )
    return ColumnRoles(**found)


def is_link_column(header_text: str) -> bool:
    return bool(LINK_COLUMN_PATTERN.search(header_text or ""))


def _cell(row: List[str], index: Optional[int], role: str) -> str:
    if index is None or index >= len(row):
        return ROLE_PLACEHOLDERS[role]
    value = (row[index] or "").strip()
    return value or ROLE_PLACEHOLDERS[role]


def lead_from_row(row: List[str], roles: ColumnRoles) -> Lead:
    return Lead(
        name=_cell(row, roles.name, 'name'),
        contact=_cell(row, roles.contact, 'contact'),
        location=_cell(row, roles.location, 'location'),
        reason=_cell(row, roles.reason, 'reason'),
    )
