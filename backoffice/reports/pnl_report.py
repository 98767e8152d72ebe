# backoffice/reports/pnl_report.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import csv
from datetime import date, datetime as _dt
from io import BytesIO, StringIO
from typing import List, Sequence

# ReportLab
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from backoffice.core.financial_reports import PeriodTotals
from backoffice.utils.money import fmt_money, money_sum

CSV_HEADER = ["Periodo", "Ingresos", "Egresos", "Utilidad"]


def _totals_row(rows: Sequence[PeriodTotals]) -> List[str]:
    return [
        "TOTAL",
        fmt_money(money_sum(r.ingresos for r in rows)),
        fmt_money(money_sum(r.egresos for r in rows)),
        fmt_money(money_sum(r.utilidad for r in rows)),
    ]


def pnl_csv(rows: Sequence[PeriodTotals]) -> str:
    """CSV con una fila por periodo (montos sin separador de miles)."""
    buf = StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for r in rows:
        writer.writerow([r.periodo, f"{r.ingresos:.2f}", f"{r.egresos:.2f}", f"{r.utilidad:.2f}"])
    return buf.getvalue()


def pnl_pdf(rows: Sequence[PeriodTotals], *, desde: date, hasta: date, agrupacion: str, empresa: str = "") -> bytes:
    """Estado de resultados por periodo en A4, devuelto como bytes."""
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4, leftMargin=14*mm, rightMargin=14*mm, topMargin=14*mm, bottomMargin=14*mm
    )
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle("small", fontSize=9, leading=11))
    styles.add(ParagraphStyle("h_doc", fontSize=16, leading=18, alignment=1))

    story: List = []
    story.append(Paragraph("Estado de Resultados", styles["h_doc"]))
    story.append(Spacer(1, 4))
    subtitle = f"Del {desde.strftime('%d/%m/%Y')} al {hasta.strftime('%d/%m/%Y')}, agrupado por {agrupacion}"
    if empresa:
        subtitle = f"<b>{empresa}</b><br/>{subtitle}"
    story.append(Paragraph(subtitle, styles["small"]))
    story.append(Spacer(1, 8))

    data = [CSV_HEADER]
    for r in rows:
        data.append([r.periodo, fmt_money(r.ingresos), fmt_money(r.egresos), fmt_money(r.utilidad)])
    data.append(_totals_row(rows))

    table = Table(data, colWidths=[40*mm, 45*mm, 45*mm, 45*mm], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#EEEEEE")),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("LINEABOVE", (0, -1), (-1, -1), 0.75, colors.black),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -2), 0.25, colors.gray),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
    ]))
    story.append(table)
    story.append(Spacer(1, 8))
    story.append(Paragraph(f"Generado el {_dt.now().strftime('%d/%m/%Y %H:%M')}", styles["small"]))

    doc.build(story)
    return buf.getvalue()
