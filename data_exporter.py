"""
Export result tables to CSV and Excel
"""
import csv
import io
import logging
import re
from pathlib import Path
from typing import List

import openpyxl
from openpyxl.styles import Font, PatternFill, Alignment

from markdown_parser import extract_table_rows

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "aufmarket_export"
BYTE_ORDER_MARK = "\ufeff"

BOLD_MARKUP = re.compile(r'(\*\*|__)(.*?)\1')
ITALIC_MARKUP = re.compile(r'(\*|_)(.*?)\1')
MARKDOWN_LINK = re.compile(r'\[([^\]]+)\]\(([^)]+)\)')


class NoExportDataError(Exception):
    """Raised when the markdown holds no table rows to export"""

    def __init__(self, message: str = "Data tidak ditemukan untuk di-export."):
        super().__init__(message)


def clean_cell(text: str) -> str:
    """Strip emphasis and turn [label](url) into 'label (url)'"""
    text = BOLD_MARKUP.sub(r'\2', text)
    text = ITALIC_MARKUP.sub(r'\2', text)
    return MARKDOWN_LINK.sub(r'\1 (\2)', text)


class DataExporter:
    """Export the tables found in a search result"""

    def __init__(self, output_dir: str = "output"):
        """Initialize exporter with output directory"""
        self.output_dir = Path(output_dir)

    def collect_rows(self, markdown_text: str) -> List[List[str]]:
        rows = [[clean_cell(c) for c in row] for row in extract_table_rows(markdown_text)]
        if not rows:
            raise NoExportDataError()
        return rows

    def build_csv(self, markdown_text: str) -> str:
        """
        Build the CSV text: every field quoted, inner quotes doubled, one line
        per table row, prefixed with a BOM so spreadsheets read it as UTF-8.
        """
        rows = self.collect_rows(markdown_text)
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
        writer.writerows(rows)
        return BYTE_ORDER_MARK + buffer.getvalue().rstrip('\n')

    def export_to_csv(self, markdown_text: str, filename: str = None) -> str:
        """Write the CSV export to the output directory"""
        content = self.build_csv(markdown_text)
        filename = filename or f"{EXPORT_PREFIX}.csv"

        self.output_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.output_dir / filename
        with open(filepath, 'w', newline='', encoding='utf-8') as csvfile:
            csvfile.write(content)

        row_count = content.count("\n") + 1
        logger.info(f"Exported {row_count} rows to {filepath}")
        return str(filepath)

    def build_workbook(self, markdown_text: str) -> openpyxl.Workbook:
        """Build an Excel workbook with a styled header row"""
        rows = self.collect_rows(markdown_text)

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Hasil"

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="047857", end_color="047857", fill_type="solid")

        for r, row in enumerate(rows, 1):
            for c, value in enumerate(row, 1):
                cell = ws.cell(row=r, column=c, value=value)
                if r == 1:
                    cell.font = header_font
                    cell.fill = header_fill
                    cell.alignment = Alignment(horizontal="center")

        # Auto-adjust column widths
        for column in ws.columns:
            max_length = max(len(str(cell.value or "")) for cell in column)
            ws.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

        return wb

    def build_excel(self, markdown_text: str) -> bytes:
        buffer = io.BytesIO()
        self.build_workbook(markdown_text).save(buffer)
        return buffer.getvalue()

    def export_to_excel(self, markdown_text: str, filename: str = None) -> str:
        """Write the Excel export to the output directory"""
        wb = self.build_workbook(markdown_text)
        filename = filename or f"{EXPORT_PREFIX}.xlsx"

        self.output_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.output_dir / filename
        wb.save(filepath)

        logger.info(f"Exported {wb.active.max_row} rows to Excel: {filepath}")
        return str(filepath)
