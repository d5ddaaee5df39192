"""CSV export of domain records (client-side only)."""

import csv
import io
import re
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import CSV_HEADERS
from ..models.domain import DomainRecord


def record_to_row(record: DomainRecord) -> List[str]:
    """Flatten one record into the exported column order."""
    return [
        record.domain,
        record.status_display,
        str(record.keyword_count or 0),
        "Yes" if record.has_workflow else "No",
        record.checked_at.date().isoformat() if record.checked_at else "",
        record.notes or "",
        record.ai_qualification_reasoning or "",
    ]


def export_csv(records: Iterable[DomainRecord]) -> str:
    """
    Serialize records to CSV text.

    The header row is plain; every data field is wrapped in quotes with
    internal quotes doubled.
    """
    buffer = io.StringIO()
    buffer.write(",".join(CSV_HEADERS) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for record in records:
        writer.writerow(record_to_row(record))
    return buffer.getvalue().rstrip("\n")


def export_filename(project_name: Optional[str], scope: str = "", today: Optional[date] = None) -> str:
    """e.g. bulk-analysis-all-my-project-2024-01-15.csv"""
    slug = re.sub(r"\s+", "-", project_name.lower()) if project_name else "export"
    day = (today or date.today()).isoformat()
    prefix = f"bulk-analysis-{scope}-" if scope else "bulk-analysis-"
    return f"{prefix}{slug}-{day}.csv"


def write_csv(output, filename: str, content: str) -> Path:
    """Write CSV text to output, or to output/filename when output is a directory."""
    path = Path(output)
    if path.is_dir():
        path = path / filename
    path.write_text(content, encoding="utf-8")
    return path
