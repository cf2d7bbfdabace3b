from decimal import Decimal
from typing import List, Literal, Optional, Tuple

from textual.notifications import SeverityLevel

from core.errors import ConflictError, TransportError, ValidationError


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    # If no headers, take the first row as header and remove it from rows
    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = list(map(str, headers))
    rows = [list(map(str, row)) for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {
        "l": ":---",
        "c": ":---:",
        "r": "---:",
    }

    header_line = "| " + " | ".join(headers) + " |"
    align_line = "| " + " | ".join(align_map[a] for a in aligns) + " |"
    row_lines = ["| " + " | ".join(map(str, row)) + " |" for row in rows]

    return "\n".join([header_line, align_line, *row_lines])


def format_money(value: Decimal | int | float) -> str:
    """Peso amount with two decimals and thousands separators."""
    return f"₱{Decimal(str(value)):,.2f}"


def notification_for(error: BaseException) -> Tuple[str, SeverityLevel, float]:
    """
    Map an exception to (message, severity, timeout) for App.notify.

    Sync, permission and timeout failures stay up for 15 seconds; the rest
    for 5.
    """
    message = str(error) or error.__class__.__name__
    lowered = message.lower()
    sync_class = any(
        marker in lowered
        for marker in ("failed to sync", "permission denied", "timeout", "timed out")
    )
    if isinstance(error, TransportError):
        sync_class = sync_class or error.is_sync_class
    # bad input is the user's to fix, not a failure
    severity = "warning" if isinstance(error, (ValidationError, ConflictError)) else "error"
    return message, severity, 15.0 if sync_class else 5.0
