"""
Order exports for the admin console.
Supports Excel (.xlsx) and CSV (.csv).
"""
import csv
import io
from datetime import datetime
from typing import Any

from django.http import HttpResponse
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter


class ExportFormat:
    EXCEL = "xlsx"
    CSV = "csv"

    CHOICES = [EXCEL, CSV]
    CONTENT_TYPES = {
        EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        CSV: "text/csv",
    }


ORDER_EXPORT_COLUMNS = [
    {"key": "order_number", "header": "Order #", "width": 18},
    {"key": "created_at", "header": "Date", "width": 20},
    {"key": "customer", "header": "Customer", "width": 30},
    {"key": "status", "header": "Status", "width": 12},
    {"key": "items", "header": "Items", "width": 8, "numeric": True},
    {"key": "subtotal", "header": "Subtotal", "width": 14, "numeric": True},
    {"key": "discount", "header": "Discount", "width": 14, "numeric": True},
    {"key": "coupon_code", "header": "Coupon", "width": 16},
    {"key": "coupon_discount", "header": "Coupon Discount", "width": 14, "numeric": True},
    {"key": "total", "header": "Total", "width": 14, "numeric": True},
    {"key": "currency", "header": "Currency", "width": 10},
    {"key": "tracking_number", "header": "Tracking #", "width": 20},
]


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)


def order_rows(orders) -> list[dict]:
    return [
        {
            "order_number": order.order_number,
            "created_at": order.created_at,
            "customer": order.user.email,
            "status": order.status,
            "items": order.items.count(),
            "subtotal": order.subtotal,
            "discount": order.discount,
            "coupon_code": order.coupon_code,
            "coupon_discount": order.coupon_discount,
            "total": order.total,
            "currency": order.currency,
            "tracking_number": order.tracking_number,
        }
        for order in orders
    ]


def export_to_excel(data: list[dict], columns: list[dict], title: str = "Export", sheet_name: str = "Data") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)

    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(columns))
    title_cell = ws.cell(row=1, column=1, value=title)
    title_cell.font = Font(bold=True, size=14)
    title_cell.alignment = Alignment(horizontal="center")

    header_row = 3
    for col_idx, col in enumerate(columns, 1):
        cell = ws.cell(row=header_row, column=col_idx, value=col["header"])
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = border
        ws.column_dimensions[get_column_letter(col_idx)].width = col.get("width", 15)

    for row_idx, row_data in enumerate(data, header_row + 1):
        for col_idx, col in enumerate(columns, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=format_value(row_data.get(col["key"])))
            cell.border = border
            if col.get("numeric"):
                cell.alignment = Alignment(horizontal="right")

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def export_to_csv(data: list[dict], columns: list[dict]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([col["header"] for col in columns])
    for row_data in data:
        writer.writerow([format_value(row_data.get(col["key"])) for col in columns])
    return output.getvalue()


def create_export_response(data: list[dict], columns: list[dict], format: str, filename: str, title: str) -> HttpResponse:
    if format not in ExportFormat.CHOICES:
        raise ValueError(f"Invalid format: {format}. Must be one of {ExportFormat.CHOICES}")

    if format == ExportFormat.EXCEL:
        response = HttpResponse(export_to_excel(data, columns, title=title), content_type=ExportFormat.CONTENT_TYPES[format])
    else:
        response = HttpResponse(export_to_csv(data, columns), content_type=ExportFormat.CONTENT_TYPES[format])
        response.charset = "utf-8-sig"

    response["Content-Disposition"] = f'attachment; filename="{filename}.{format}"'
    return response
