"""
utils/export.py — Excel export generation using openpyxl.

Generates an .xlsx file with the work orders of one cultivation season,
styled header row and category fills.
Columns: Title, Activity, Category, Priority, Status, Assignee, Start, End,
Progress, Description.
"""

from io import BytesIO

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from activity_catalog import CROP_CARE, HARVEST_CATEGORY, PLANTING_PREP, RND
from database import get_field, get_season, list_work_orders

CATEGORY_FILLS = {
    PLANTING_PREP: PatternFill(start_color='8D6E63', end_color='8D6E63', fill_type='solid'),
    CROP_CARE: PatternFill(start_color='4CAF50', end_color='4CAF50', fill_type='solid'),
    HARVEST_CATEGORY: PatternFill(start_color='FFB300', end_color='FFB300', fill_type='solid'),
    RND: PatternFill(start_color='7B1FA2', end_color='7B1FA2', fill_type='solid'),
}

HEADER_FONT = Font(name='Calibri', bold=True, color='FFFFFF', size=11)
HEADER_FILL = PatternFill(start_color='1565C0', end_color='1565C0', fill_type='solid')
HEADER_ALIGNMENT = Alignment(horizontal='center', vertical='center', wrap_text=True)
HEADER_BORDER = Border(
    bottom=Side(style='thin', color='0D47A1'),
    right=Side(style='thin', color='E2E8F0'),
)
CELL_BORDER = Border(
    bottom=Side(style='thin', color='E2E8F0'),
    right=Side(style='thin', color='E2E8F0'),
)

COLUMNS = [
    ('Title', 32), ('Activity', 22), ('Category', 14), ('Priority', 10),
    ('Status', 12), ('Assignee', 20), ('Start', 12), ('End', 12),
    ('Progress', 10), ('Description', 40),
]

CATEGORY_COLUMN = 3


def _build_sheet(ws, work_orders):
    """Populate a worksheet with one row per work order."""
    for col_idx, (col_name, width) in enumerate(COLUMNS, 1):
        cell = ws.cell(row=1, column=col_idx, value=col_name)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGNMENT
        cell.border = HEADER_BORDER
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    for row_idx, order in enumerate(work_orders, 2):
        values = [
            order.title, order.activity_kind, order.category, order.priority,
            order.status, order.assignee,
            order.start_date.isoformat() if order.start_date else '',
            order.end_date.isoformat() if order.end_date else '',
            order.progress, order.description or '',
        ]
        for col_idx, value in enumerate(values, 1):
            ws.cell(row=row_idx, column=col_idx, value=value).border = CELL_BORDER

        category_cell = ws.cell(row=row_idx, column=CATEGORY_COLUMN)
        if order.category in CATEGORY_FILLS:
            category_cell.fill = CATEGORY_FILLS[order.category]
            category_cell.font = Font(color='FFFFFF', bold=True)

    ws.freeze_panes = 'A2'


def generate_season_excel(season_id):
    """Generate an Excel workbook for one season's work orders.

    Returns:
        (BytesIO buffer, filename), or (None, None) if the season does not exist.
    """
    season = get_season(season_id)
    if season is None:
        return None, None

    field = get_field(season.field_id)
    wb = openpyxl.Workbook()
    ws = wb.active
    # Sheet titles are limited to 31 characters
    ws.title = season.name[:31] or f"Season {season.id}"

    _build_sheet(ws, list_work_orders(season_id=season_id))

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)

    field_part = (field.name if field else f"field{season.field_id}").replace(' ', '_')
    filename = f"work_orders_{field_part}_{season.name.replace(' ', '_')}.xlsx"
    return buffer, filename
