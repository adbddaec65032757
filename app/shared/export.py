"""File export helpers: styled XLSX workbooks and French-locale CSV.

Both writers produce in-memory buffers that routes wrap with
:func:`export_response` as a streaming download.
"""

import csv
import io
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MIME = "text/csv; charset=utf-8"

EXCEL_SHEET_NAME_MAX = 31
_HEADER_FILL = PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid")
_HEADER_FONT = Font(bold=True)
_HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")
_MIN_COLUMN_WIDTH = 10
_MAX_COLUMN_WIDTH = 50


def export_filename(prefix: str, extension: str, now: datetime | None = None) -> str:
    """Build ``<prefix>_YYYYMMDD_HHMMSS.<extension>``."""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{stamp}.{extension}"


def export_response(buffer: io.BytesIO, media_type: str, filename: str) -> StreamingResponse:
    """Wrap a buffer as an attachment download."""
    buffer.seek(0)
    return StreamingResponse(
        buffer,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


class ExcelExporter:
    """Multi-sheet workbook builder with a uniform header style.

    Each sheet gets a bold grey centred header row, an autofilter over the
    data, and column widths fitted to content within [10, 50].
    """

    def __init__(self) -> None:
        self.workbook = Workbook()
        self._first_sheet = True

    def add_sheet(
        self,
        name: str,
        headers: Sequence[str],
        rows: Iterable[Mapping[str, Any]],
    ) -> None:
        """Append a sheet.

        Args:
            name: Sheet title (truncated to Excel's 31 characters).
            headers: Column headers, also used as row keys.
            rows: Row mappings keyed by header.
        """
        title = name[:EXCEL_SHEET_NAME_MAX]
        if self._first_sheet:
            ws = self.workbook.active
            ws.title = title
            self._first_sheet = False
        else:
            ws = self.workbook.create_sheet(title=title)

        ws.append(list(headers))
        for row in rows:
            ws.append([_excel_value(row.get(header)) for header in headers])

        for cell in ws[1]:
            cell.fill = _HEADER_FILL
            cell.font = _HEADER_FONT
            cell.alignment = _HEADER_ALIGNMENT

        if headers:
            ws.auto_filter.ref = ws.dimensions

        for idx, column in enumerate(ws.iter_cols(min_row=1, max_row=ws.max_row), start=1):
            longest = max((len(str(c.value)) for c in column if c.value is not None), default=0)
            width = min(max(longest + 2, _MIN_COLUMN_WIDTH), _MAX_COLUMN_WIDTH)
            ws.column_dimensions[get_column_letter(idx)].width = width

    @property
    def sheet_names(self) -> list[str]:
        return list(self.workbook.sheetnames)

    def to_buffer(self) -> io.BytesIO:
        """Serialize the workbook."""
        buffer = io.BytesIO()
        self.workbook.save(buffer)
        buffer.seek(0)
        return buffer


def _excel_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


# =============================================================================
# CSV
# =============================================================================


def format_csv_value(value: Any) -> str:
    """Format a value for French spreadsheet tools.

    Dates become DD/MM/YYYY, numbers use a decimal comma, None is empty.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "oui" if value else "non"
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, (int, float, Decimal)):
        return str(value).replace(".", ",")
    return str(value)


def build_csv(
    headers: Sequence[str],
    rows: Iterable[Mapping[str, Any]],
    columns: Sequence[str] | None = None,
    separator: str = ";",
) -> io.BytesIO:
    """Write rows as a UTF-8 CSV with BOM (so Excel detects the encoding).

    Args:
        headers: Header labels.
        rows: Row mappings.
        columns: Row keys matching ``headers`` (defaults to the headers).
        separator: Field separator; ``;`` because ``,`` is the decimal mark.

    Returns:
        Buffer positioned at 0.
    """
    keys = list(columns or headers)
    text = io.StringIO()
    writer = csv.writer(text, delimiter=separator, lineterminator="\r\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([format_csv_value(row.get(key)) for key in keys])
    return io.BytesIO(("\ufeff" + text.getvalue()).encode("utf-8"))
