# Merge history - date filtering, summary, CSV and PDF export of patient_merge audit entries
from __future__ import annotations

import csv
import io
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import LongTable, Paragraph, SimpleDocTemplate, Spacer, TableStyle

from models import AuditLogEntry, Profile

CSV_HEADERS = [
    "Merge Date/Time",
    "Performed By",
    "Primary Patient Name",
    "Primary Patient DOB",
    "Merged Patient Names",
    "Total Episodes Merged",
    "Episode IDs Updated",
]

UNKNOWN_USER = "Unknown User"


def _entry_date(entry: AuditLogEntry) -> date:
    return datetime.fromisoformat(entry.createdAt).date()


def filter_by_date_range(
    entries: List[AuditLogEntry],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[AuditLogEntry]:
    """Keep entries created within [date_from, date_to]; date_to includes the whole day."""
    filtered = []
    for entry in entries:
        created = _entry_date(entry)
        if date_from and created < date_from:
            continue
        if date_to and created > date_to:
            continue
        filtered.append(entry)
    return filtered


def summarize(entries: List[AuditLogEntry]) -> Dict[str, int]:
    return {
        "totalMerges": len(entries),
        "totalEpisodesAffected": sum(e.oldData.get("totalEpisodesAffected", 0) for e in entries),
    }


def performer_name(entry: AuditLogEntry, profiles: Dict[str, Profile]) -> str:
    profile = profiles.get(entry.userId)
    if not profile:
        return UNKNOWN_USER
    return profile.fullName or profile.email or UNKNOWN_USER


def export_csv(entries: List[AuditLogEntry], profiles: Dict[str, Profile]) -> str:
    """
    One row per merge. Multi-valued cells (merged names, episode ids) are
    joined with "; ". Every cell is quoted.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for entry in entries:
        primary = entry.newData.get("primaryPatient", {})
        merged = entry.oldData.get("mergedPatients", [])
        writer.writerow([
            datetime.fromisoformat(entry.createdAt).strftime("%Y-%m-%d %H:%M:%S"),
            performer_name(entry, profiles),
            primary.get("patientName", ""),
            primary.get("dateOfBirth", ""),
            "; ".join(p["patientName"] for p in merged),
            str(entry.oldData.get("totalEpisodesAffected", 0)),
            "; ".join(entry.newData.get("episodeIdsUpdated", [])),
        ])
    return buffer.getvalue()


def export_filename(
    date_from: Optional[date], date_to: Optional[date], today: date, extension: str = "csv"
) -> str:
    """patient_merge_history_<from|all>_to_<to|now>.<ext> when filtered, else _<today>.<ext>"""
    if date_from or date_to:
        start = date_from.isoformat() if date_from else "all"
        end = date_to.isoformat() if date_to else "now"
        return f"patient_merge_history_{start}_to_{end}.{extension}"
    return f"patient_merge_history_{today.isoformat()}.{extension}"


PDF_HEADERS = ["Date/Time", "User", "Primary Patient", "Merged Patients", "Episodes"]


def _page_number(canvas, doc):
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.drawCentredString(letter[0] / 2, 0.4 * inch, f"Page {doc.page}")
    canvas.restoreState()


def export_pdf(
    entries: List[AuditLogEntry],
    profiles: Dict[str, Profile],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """Audit report: title, optional filter line, summary totals, one table row per merge"""
    generated_at = generated_at or datetime.now(timezone.utc)
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=letter,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        title="Patient Merge History",
    )
    styles = getSampleStyleSheet()
    story = [
        Paragraph("Patient Merge History - Audit Report", styles["Title"]),
        Paragraph(f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}", styles["Normal"]),
    ]
    if date_from or date_to:
        start = date_from.strftime("%b %d, %Y") if date_from else "All"
        end = date_to.strftime("%b %d, %Y") if date_to else "Now"
        story.append(Paragraph(f"Filter: {start} to {end}", styles["Normal"]))

    totals = summarize(entries)
    story += [
        Spacer(1, 0.2 * inch),
        Paragraph("Summary", styles["Heading2"]),
        Paragraph(f"Total Merges: {totals['totalMerges']}", styles["Normal"]),
        Paragraph(f"Total Episodes Affected: {totals['totalEpisodesAffected']}", styles["Normal"]),
        Spacer(1, 0.2 * inch),
    ]

    rows = [PDF_HEADERS]
    for entry in entries:
        rows.append([
            datetime.fromisoformat(entry.createdAt).strftime("%Y-%m-%d %H:%M"),
            performer_name(entry, profiles),
            entry.newData.get("primaryPatient", {}).get("patientName", ""),
            ", ".join(p["patientName"] for p in entry.oldData.get("mergedPatients", [])),
            str(entry.oldData.get("totalEpisodesAffected", 0)),
        ])
    table = LongTable(rows, colWidths=[1.3 * inch, 1.3 * inch, 1.5 * inch, 2.7 * inch, 0.7 * inch], repeatRows=1)
    table.setStyle(TableStyle([
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#3B82F6")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F5F5F5")]),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    story.append(table)

    doc.build(story, onFirstPage=_page_number, onLaterPages=_page_number)
    return buf.getvalue()
