"""
Text rendering of query results in psql's aligned format.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

NUMERIC_TYPES = {
    "int2", "int4", "int8", "float4", "float8", "numeric", "oid", "money",
}


def format_value(value: Any) -> str:
    """Render a single value the way psql prints it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, timedelta):
        return format_interval(value)
    if isinstance(value, (list, tuple)):
        return "{" + ",".join(format_value(v) for v in value) + "}"
    return str(value)


def format_interval(value: timedelta) -> str:
    """Format an interval as [N days ]HH:MM:SS[.ffffff]."""
    sign = ""
    if value < timedelta(0):
        sign = "-"
        value = -value

    days = value.days
    seconds = value.seconds
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.microseconds:
        clock += f".{value.microseconds:06d}".rstrip("0")

    if days:
        unit = "day" if days == 1 else "days"
        return f"{sign}{days} {unit} {clock}"
    return f"{sign}{clock}"


def _pad(text: str, width: int, align: str) -> str:
    if align == "right":
        return text.rjust(width)
    if align == "center":
        left = (width - len(text)) // 2
        return (" " * left + text).ljust(width)
    return text.ljust(width)


def _render_line(cells: List[List[str]], widths: List[int], aligns: List[str]) -> List[str]:
    """Render one logical row, which spans several lines when a cell has newlines."""
    height = max(len(cell) for cell in cells)
    lines = []
    for i in range(height):
        segments = []
        for col, cell in enumerate(cells):
            text = cell[i] if i < len(cell) else ""
            marker = "+" if i < len(cell) - 1 else " "
            segments.append(_pad(text, widths[col], aligns[col]) + marker)
        lines.append((" " + "| ".join(segments)).rstrip())
    return lines


def render_table(
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    numeric_columns: Optional[Set[int]] = None,
    tuples_only: bool = False,
    footer: bool = True
) -> str:
    """
    Render rows as psql's aligned output.

    Args:
        columns: Column names
        rows: Row values, one sequence per row
        numeric_columns: Indexes of columns to right-align
        tuples_only: Omit the header, rule and row count
        footer: Print the "(N rows)" line after the rows

    Returns:
        Rendered table text without a trailing newline
    """
    numeric_columns = numeric_columns or set()
    aligns = ["right" if i in numeric_columns else "left" for i in range(len(columns))]
    body = [[format_value(v).split("\n") for v in row] for row in rows]

    widths = []
    for col, name in enumerate(columns):
        width = 0 if tuples_only else len(name)
        for row in body:
            width = max(width, *(len(part) for part in row[col]))
        widths.append(width)

    lines = []
    if not tuples_only:
        header = [[name] for name in columns]
        lines.extend(_render_line(header, widths, ["center"] * len(columns)))
        lines.append("+".join("-" * (w + 2) for w in widths))

    for row in body:
        lines.extend(_render_line(row, widths, aligns))

    if footer and not tuples_only:
        count = len(rows)
        lines.append(f"({count} {'row' if count == 1 else 'rows'})")

    return "\n".join(lines)


def render_records(records: List[Dict[str, Any]], columns: List[Tuple[str, str]],
                   footer: bool = True) -> str:
    """
    Render a list of mappings as a table.

    Args:
        records: Rows keyed by field name
        columns: (key, label) pairs selecting and naming the output columns
        footer: Print the row count line

    Returns:
        Rendered table text
    """
    labels = [label for _, label in columns]
    rows = [[record.get(key) for key, _ in columns] for record in records]
    numeric = {
        i for i, (key, _) in enumerate(columns)
        if records and all(isinstance(r.get(key), int) and not isinstance(r.get(key), bool) for r in records)
    }
    return render_table(labels, rows, numeric_columns=numeric, footer=footer)
