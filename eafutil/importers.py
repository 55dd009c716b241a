"""Builds EAF documents from delimited text tables."""

import csv
import logging
import os
from typing import Dict, List, Optional, Tuple

from .exceptions import EafUtilError, MediaError
from .models import EafDocument, LinguisticType
from .utils import parse_timestamp

logger = logging.getLogger(__name__)

REF_LINGUISTIC_TYPE = "csv_ref_values"

def read_table(path: str, delimiter: str = ",") -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Reads a delimited file with a header row.

    Returns:
        The header and the rows as dicts keyed by column name.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"CSV file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f, delimiter=delimiter)
            header = [h.strip() for h in (reader.fieldnames or [])]
            reader.fieldnames = header
            rows = [row for row in reader]
    except (UnicodeDecodeError, csv.Error) as e:
        raise EafUtilError(f"Could not read {path} as UTF-8 {delimiter!r}-delimited text: {e}") from e
    return header, rows

def eaf_from_table(
    rows: List[Dict[str, str]],
    header: List[str],
    start_column: str = "start",
    end_column: str = "end",
    value_column: str = "values",
    ref_columns: Optional[List[str]] = None,
    media: Optional[str] = None,
    relative_to: Optional[str] = None,
    author: str = "eafutil",
    source: str = "<table>",
) -> EafDocument:
    """
    Builds an EAF document from table rows.

    The value column becomes a time-aligned main tier named after the
    column. Each ref column becomes a Symbolic_Association tier referring
    to it.

    Raises:
        EafUtilError: If a column is missing or reused, or a timestamp cannot be parsed.
        MediaError: If `media` does not exist.
    """
    ref_columns = ref_columns or []
    for column in [start_column, end_column, value_column] + ref_columns:
        if column not in header:
            raise EafUtilError(f"Column '{column}' not found in {source}. Columns: {', '.join(header)}")
    if value_column in ref_columns:
        raise EafUtilError(f"Column '{value_column}' is the value column and cannot also be a ref column")
    if len(set(ref_columns)) != len(ref_columns):
        raise EafUtilError(f"Ref columns must be unique, got: {', '.join(ref_columns)}")

    doc = EafDocument.new(author)
    doc.add_tier(value_column)
    if ref_columns:
        doc.add_linguistic_type(LinguisticType(REF_LINGUISTIC_TYPE, time_alignable=False, constraints="Symbolic_Association"))
        for column in ref_columns:
            doc.add_tier(column, REF_LINGUISTIC_TYPE, parent_ref=value_column)

    for line, row in enumerate(rows, start=2):
        try:
            start = parse_timestamp(row[start_column] or "")
            end = parse_timestamp(row[end_column] or "")
        except ValueError as e:
            raise EafUtilError(f"{source}, line {line}: {e}") from e
        if end < start:
            raise EafUtilError(f"{source}, line {line}: end ({end} ms) is before start ({start} ms)")
        annotation = doc.add_alignable(value_column, start, end, (row[value_column] or "").strip())
        for column in ref_columns:
            doc.add_ref(column, annotation.id, (row[column] or "").strip())

    if media:
        if not os.path.isfile(media):
            raise MediaError(f"Media file not found: {media}")
        doc.add_media(media, relative_to)
    logger.info(f"Built EAF from {source}: {len(rows)} rows, {doc.tier_count()} tiers")
    return doc

def format_table(header: List[str], rows: List[Dict[str, str]]) -> str:
    """Debug listing of the parsed table."""
    lines = [" | ".join(header)]
    for i, row in enumerate(rows, start=1):
        lines.append(f"{i:>4}: " + " | ".join(row.get(h) or "" for h in header))
    return "\n".join(lines)
