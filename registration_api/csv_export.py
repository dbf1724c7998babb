from datetime import datetime
from typing import Any, Dict, Iterable

import pandas as pd


CSV_FILENAME = "registrations.csv"


def format_cell(value: Any) -> str:
    if isinstance(value, str):
        escaped = value.replace('"', '""')
        return f'"{escaped}"'
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def records_to_csv(records: Iterable[Dict[str, Any]]) -> str:
    """
    Serialize stored registrations to CSV text.

    The header is the field list of the first record; later records are laid out
    in that column order and fields the first record lacks are dropped. Text
    values are always quoted with embedded quotes doubled, everything else is
    written bare.

    Args:
        records (Iterable[Dict[str, Any]]): Documents as returned by MongoDB.

    Returns:
        str: The CSV text, or an empty string when there are no records.
    """
    records = list(records)
    if not records:
        return ""

    headers = list(records[0].keys())
    # object dtype keeps ints as ints when some rows miss the column
    frame = pd.DataFrame(records, columns=headers, dtype=object)

    rows = [",".join(headers)]
    for row in frame.itertuples(index=False, name=None):
        rows.append(",".join(format_cell(value) for value in row))
    return "\n".join(rows)
