import csv
from datetime import datetime, timezone
from io import BytesIO, StringIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

ASSET_COLUMNS = [
    ("assetNumber", "Asset Number"),
    ("type", "Type"),
    ("description", "Description"),
    ("state", "State"),
    ("location", "Location"),
    ("assignedTo", "Assigned To"),
    ("purchasePrice", "Purchase Price"),
    ("updatedAt", "Updated"),
]

USER_COLUMNS = [
    ("employeeId", "Employee ID"),
    ("name", "Name"),
    ("email", "Email"),
    ("role", "Role"),
    ("department", "Department"),
    ("status", "Status"),
]

LOCATION_COLUMNS = [
    ("name", "Name"),
    ("description", "Description"),
    ("isActive", "Active"),
    ("assetCount", "Assets"),
]


def asset_export_row(asset) -> dict:
    return {
        "assetNumber": asset.asset_number or "",
        "type": asset.type.value,
        "description": asset.description,
        "state": asset.state.value,
        "location": asset.location.name if asset.location else "",
        "assignedTo": asset.assigned_to or "Unassigned",
        "purchasePrice": f"{float(asset.purchase_price or 0):.2f}",
        "updatedAt": asset.updated_at.strftime("%Y-%m-%d %H:%M") if asset.updated_at else "",
    }


def rows_to_csv(columns: list[tuple[str, str]], rows: list[dict]) -> bytes:
    buf = StringIO()
    writer = csv.writer(buf)
    writer.writerow([label for _, label in columns])
    for row in rows:
        writer.writerow(["" if row.get(key) is None else row.get(key) for key, _ in columns])
    return buf.getvalue().encode("utf-8")


def rows_to_pdf(title: str, columns: list[tuple[str, str]], rows: list[dict], filters: dict | None = None) -> bytes:
    """Render rows as a landscape A4 table report."""
    buf = BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4), title=title)
    styles = getSampleStyleSheet()
    cell_style = styles["BodyText"]

    story = [Paragraph(f"<b>{escape(title)}</b>", styles["Title"])]
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    story.append(Paragraph(f"Generated: {generated}", styles["Normal"]))

    active = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
    if active:
        summary = ", ".join(f"{k}: {v}" for k, v in active.items())
        story.append(Paragraph(f"Filters: {escape(summary)}", styles["Normal"]))
    story.append(Paragraph(f"Total records: {len(rows)}", styles["Normal"]))
    story.append(Spacer(1, 12))

    data = [[label for _, label in columns]]
    for row in rows:
        data.append([Paragraph(escape(str(row.get(key) if row.get(key) is not None else "")), cell_style) for key, _ in columns])

    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f4f6")]),
    ]))
    story.append(table)

    doc.build(story)
    return buf.getvalue()
