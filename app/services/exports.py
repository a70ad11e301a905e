from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from sqlalchemy.orm import Session

from app.models import DailyStatus
from app.security import Actor
from app.services.reports import AttendanceReportRow, build_attendance_rows

ATTENDANCE_HEADERS = [
    "Fecha",
    "Empleado",
    "Email",
    "Departamento",
    "Estado",
    "Hora Entrada",
    "Hora Salida",
    "Minutos Tardanza",
    "Dentro Geofence",
    "Distancia (m)",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
ALERT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")
SUCCESS_FILL = PatternFill(fill_type="solid", fgColor="E6F4EA")

HEADER_FONT = Font(bold=True, color="FFFFFF")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)

STATUS_FILLS = {
    DailyStatus.PRESENTE: SUCCESS_FILL,
    DailyStatus.TARDE: WARNING_FILL,
    DailyStatus.AUSENTE: ALERT_FILL,
}
STATUS_COLUMN = ATTENDANCE_HEADERS.index("Estado") + 1


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _geofence_label(value: bool | None) -> str:
    if value is None:
        return ""
    return "Sí" if value else "No"


def _row_values(row: AttendanceReportRow) -> list[object]:
    status_label = row.status.value
    if row.on_vacation:
        status_label = f"{status_label} (VACACIONES)"
    return [
        row.day.isoformat(),
        row.full_name,
        row.email,
        row.department_name,
        status_label,
        row.first_in_local or "",
        row.last_out_local or "",
        row.late_minutes,
        _geofence_label(row.inside_geofence),
        round(row.distance_to_center) if row.distance_to_center is not None else "",
    ]


def write_attendance_sheet(ws: Worksheet, rows: Sequence[AttendanceReportRow]) -> None:
    ws.append(ATTENDANCE_HEADERS)
    _style_header(ws)
    for index, row in enumerate(rows, start=2):
        ws.append(_row_values(row))
        for cell in ws[index]:
            cell.border = THIN_BORDER
            if index % 2 == 0:
                cell.fill = ZEBRA_FILL
        status_fill = STATUS_FILLS.get(row.status)
        if status_fill is not None:
            ws.cell(row=index, column=STATUS_COLUMN).fill = status_fill
    ws.freeze_panes = "A2"
    _auto_width(ws)


def build_attendance_xlsx_bytes(rows: Sequence[AttendanceReportRow]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Asistencia"
    write_attendance_sheet(ws, rows)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


def export_attendance_range(
    db: Session,
    *,
    actor: Actor,
    start_date: date,
    end_date: date,
    department_id: int | None = None,
) -> bytes:
    rows = build_attendance_rows(
        db,
        actor=actor,
        start=start_date,
        end=end_date,
        department_id=department_id,
    )
    return build_attendance_xlsx_bytes(rows)
