"""
CSV export utilities
"""
import csv
import io
from typing import Dict, Iterable, Iterator, List

from fastapi.responses import StreamingResponse


def iter_csv(headers: List[str], rows: Iterable[Dict]) -> Iterator[str]:
    """
    Render rows as CSV text, one chunk per row (header first).

    Args:
        headers: Column names, in output order
        rows: Iterable of dictionaries keyed by column name
    """
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=headers, quoting=csv.QUOTE_MINIMAL, extrasaction="ignore")

    writer.writeheader()
    yield output.getvalue()
    output.seek(0)
    output.truncate(0)

    for row in rows:
        # Fill missing columns with empty string
        writer.writerow({header: str(row.get(header, "")) for header in headers})
        yield output.getvalue()
        output.seek(0)
        output.truncate(0)


def stream_csv(headers: List[str], rows: Iterable[Dict], filename: str = "export.csv") -> StreamingResponse:
    """
    Stream CSV data as HTTP response

    Args:
        headers: List of column headers
        rows: Iterable of dictionaries with data rows (consumed lazily)
        filename: Filename for Content-Disposition header

    Returns:
        StreamingResponse with CSV content
    """
    return StreamingResponse(
        (chunk.encode("utf-8") for chunk in iter_csv(headers, rows)),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        }
    )
