"""
Line-oriented parser for the markdown returned by the search model
"""
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

SEPARATOR_CELL = re.compile(r'^[-:\s]+$')
BOLD_PATTERN = re.compile(r'\*\*(.*?)\*\*')


@dataclass
class Block:
    """One displayable piece of the model output"""
    kind: str  # 'heading', 'list_item', 'paragraph' or 'table'
    text: str = ""
    table: Optional['TableBlock'] = None


@dataclass
class TableBlock:
    header: List[str]
    rows: List[List[str]] = field(default_factory=list)


def split_cells(line: str) -> List[str]:
    """Split a '| a | b |' line into trimmed cells"""
    trimmed = line.strip()
    if trimmed.startswith('|'):
        trimmed = trimmed[1:]
    if trimmed.endswith('|'):
        trimmed = trimmed[:-1]
    return [cell.strip() for cell in trimmed.split('|')]


def is_separator_row(cells: List[str]) -> bool:
    return all(SEPARATOR_CELL.match(cell) for cell in cells)


def unwrap_bold(text: str) -> str:
    return BOLD_PATTERN.sub(r'\1', text)


def _table_from_buffer(buffer: List[List[str]]) -> Optional[TableBlock]:
    # Header plus separator is the minimum; anything shorter is noise
    if len(buffer) < 2:
        return None
    return TableBlock(header=buffer[0], rows=buffer[2:])


def parse_blocks(text: str) -> Iterator[Block]:
    """
    Yield heading, list item, paragraph and table blocks from raw markdown.

    Consecutive lines starting with '|' are collected into one table. The
    table is emitted when the first non-table line (or the end of input)
    is reached.
    """
    table_buffer: List[List[str]] = []

    for line in (text or "").split('\n'):
        trimmed = line.strip()

        if trimmed.startswith('|'):
            table_buffer.append(split_cells(trimmed))
            continue

        if table_buffer:
            table = _table_from_buffer(table_buffer)
            if table:
                yield Block(kind='table', table=table)
            table_buffer = []

        if not trimmed:
            continue

        if trimmed.startswith('#'):
            yield Block(kind='heading', text=re.sub(r'^#+\s*', '', trimmed))
        elif trimmed.startswith('-') or trimmed.startswith('*'):
            item = re.sub(r'^[-*]\s*', '', trimmed)
            yield Block(kind='list_item', text=unwrap_bold(item))
        else:
            yield Block(kind='paragraph', text=unwrap_bold(trimmed))

    if table_buffer:
        table = _table_from_buffer(table_buffer)
        if table:
            yield Block(kind='table', table=table)


def extract_table_rows(text: str) -> List[List[str]]:
    """
    Collect every data row (header rows included) from well-formed table lines.

    Used by the exporters, which work on the raw text rather than on the
    rendered view. Separator rows and single-cell rows are skipped.
    """
    rows: List[List[str]] = []
    for line in (text or "").split('\n'):
        trimmed = line.strip()
        if not (trimmed.startswith('|') and trimmed.endswith('|')) or len(trimmed) < 2:
            continue
        cells = [cell.strip() for cell in trimmed[1:-1].split('|')]
        if is_separator_row(cells) or len(cells) < 2:
            continue
        rows.append(cells)
    return rows
