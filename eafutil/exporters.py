"""Exports EAF documents as JSON and CSV."""

import csv
import json
import logging
from typing import List

from .exceptions import FileSystemError
from .models import EafDocument
from .utils import ensure_writable, format_ms

logger = logging.getLogger(__name__)

DELIMITERS = {"tab": "\t", "comma": ",", "semicolon": ";"}

CSV_HEADERS = [
    "TIER_ID",
    "TIER_SIZE",
    "PARENT_TIER",
    "TIER_TYPE",
    "PARTICIPANTS",
    "ANNOTATOR",
    "ANNOTATION_VALUE",
    "ANNOTATION_START_HHMMSS",
    "ANNOTATION_START_MS",
    "ANNOTATION_END_HHMMSS",
    "ANNOTATION_END_MS",
]

EMPTY_TIER = "<EMPTY TIER>"

def write_json(doc: EafDocument, path: str, simple: bool = False, overwrite: bool = False) -> str:
    """
    Writes `doc` as JSON.

    Args:
        doc: The document.
        path: Output file.
        simple: Only tiers with annotation values and times.
        overwrite: Replace an existing file.
    """
    ensure_writable(path, overwrite)
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(doc.to_dict(simple=simple), f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise FileSystemError(f"Could not write {path}: {e}") from e
    logger.info(f"Wrote {path}")
    return path

def csv_rows(doc: EafDocument) -> List[List[str]]:
    """One row per annotation, one placeholder row per empty tier."""
    spans = doc.annotation_spans()
    rows = []
    for tier in doc.tiers:
        common = [
            tier.tier_id,
            str(len(tier)),
            tier.parent_ref or "",
            tier.linguistic_type_ref,
            tier.participant or "",
            tier.annotator or "",
        ]
        if not tier.annotations:
            rows.append(common + [EMPTY_TIER, "", "", "", ""])
            continue
        for annotation in tier.annotations:
            start, end = spans.get(annotation.id, (None, None))
            rows.append(common + [
                annotation.value,
                format_ms(start),
                "" if start is None else str(start),
                format_ms(end),
                "" if end is None else str(end),
            ])
    return rows

def write_csv(doc: EafDocument, path: str, delimiter: str = "\t", overwrite: bool = False) -> str:
    """Writes every annotation of `doc` as a delimited table with CSV_HEADERS."""
    ensure_writable(path, overwrite)
    try:
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f, delimiter=delimiter)
            writer.writerow(CSV_HEADERS)
            writer.writerows(csv_rows(doc))
    except OSError as e:
        raise FileSystemError(f"Could not write {path}: {e}") from e
    logger.info(f"Wrote {path}")
    return path
