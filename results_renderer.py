"""
Turn parsed markdown blocks into a row-addressable view for the browser and CLI
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from column_roles import Lead, resolve_columns, lead_from_row, is_link_column
from markdown_parser import parse_blocks

ACTION_COLUMN = "Action"
MAPS_LINK_LABEL = "Buka Maps"

URL_HINT = re.compile(r'^http|www|maps\.')
PARENTHESIZED = re.compile(r'\((.*?)\)')
UNSAFE_URL_CHARS = re.compile(r'[^A-Za-z0-9:/.?=&_%-]')


@dataclass
class RenderedCell:
    text: str
    href: Optional[str] = None
    label: Optional[str] = None

    def to_dict(self) -> Dict:
        return {'text': self.text, 'href': self.href, 'label': self.label}


@dataclass
class RenderedRow:
    cells: List[RenderedCell]
    lead: Lead
    action_ref: str

    def to_dict(self) -> Dict:
        return {
            'cells': [c.to_dict() for c in self.cells],
            'lead': self.lead.to_dict(),
            'action_ref': self.action_ref,
        }


@dataclass
class RenderedBlock:
    kind: str
    text: str = ""
    header: List[str] = field(default_factory=list)
    rows: List[RenderedRow] = field(default_factory=list)

    @property
    def columns(self) -> List[str]:
        """Table header plus the synthetic action column"""
        return self.header + [ACTION_COLUMN]

    def to_dict(self) -> Dict:
        data = {'kind': self.kind, 'text': self.text}
        if self.kind == 'table':
            data['header'] = self.header
            data['columns'] = self.columns
            data['rows'] = [r.to_dict() for r in self.rows]
        return data


def sanitize_url(url: str) -> str:
    return UNSAFE_URL_CHARS.sub('', url or "")


def render_cell(header_text: str, cell: str) -> RenderedCell:
    """Render a cell, turning map links into clickable hyperlinks when possible"""
    cell_text = (cell or "").strip()
    if not is_link_column(header_text):
        return RenderedCell(text=cell_text)

    if not (URL_HINT.search(cell_text) or 'http' in cell_text):
        return RenderedCell(text=cell_text)

    match = PARENTHESIZED.search(cell_text)
    url = match.group(1) if match and match.group(1) else cell_text
    clean_url = sanitize_url(url)
    if clean_url.startswith('http'):
        return RenderedCell(text=cell_text, href=clean_url, label=MAPS_LINK_LABEL)
    return RenderedCell(text=cell_text)


def render_markdown(text: str) -> List[RenderedBlock]:
    """
    Render markdown into blocks. Every table row carries the Lead built from
    its cells and an opaque action reference ('<table>-<row>') that the UI
    sends back when the user picks the row.
    """
    rendered: List[RenderedBlock] = []
    table_index = 0

    for block in parse_blocks(text):
        if block.kind != 'table':
            rendered.append(RenderedBlock(kind=block.kind, text=block.text))
            continue

        header = block.table.header
        roles = resolve_columns(header)
        rows = []
        for row_index, row in enumerate(block.table.rows):
            cells = [
                render_cell(header[ci] if ci < len(header) else "", cell)
                for ci, cell in enumerate(row)
            ]
            rows.append(RenderedRow(
                cells=cells,
                lead=lead_from_row(row, roles),
                action_ref=f"{table_index}-{row_index}",
            ))
        rendered.append(RenderedBlock(kind='table', header=header, rows=rows))
        table_index += 1

    return rendered


def find_row(blocks: List[RenderedBlock], action_ref: str) -> Optional[RenderedRow]:
    """Look up the row behind an action reference"""
    for block in blocks:
        for row in block.rows:
            if row.action_ref == action_ref:
                return row
    return None


def blocks_to_dicts(blocks: List[RenderedBlock]) -> List[Dict]:
    return [b.to_dict() for b in blocks]
