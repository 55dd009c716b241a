"""Human-readable reports for the inspect and tree commands."""

import logging
from typing import List, Optional

from .models import EafDocument, Tier
from .text import tokenize

logger = logging.getLogger(__name__)

ID_WIDTH = 20
PREVIEW_WIDTH = 30

def _truncate(value: Optional[str], width: int) -> str:
    if value is None:
        return "-"
    value = " ".join(value.split())
    if len(value) > width:
        return value[:width - 1] + "…"
    return value

def _section(title: str) -> List[str]:
    return ["", f"{title}", "-" * len(title)]

def format_overview(doc: EafDocument, verbose: bool = False) -> str:
    """
    Builds the inspect report: optional header details, a tier table and
    document statistics.

    Args:
        doc: The parsed document.
        verbose: Include header, linguistic types, locales, languages,
                 constraints and controlled vocabularies.

    Returns:
        The report as a single string.
    """
    lines = [f"[{doc.path or '<unsaved>'}]"]
    if verbose:
        lines.extend(_format_details(doc))

    lines.extend(_section("Tiers"))
    lines.append(
        f"{'#':>3}  {'ID':<{ID_WIDTH}}  {'Parent':<{ID_WIDTH}}  {'Tkn':<3}  {'Annots':>6}  "
        f"{'Tokens u/t':>13}  {'Participant':<15}  {'Annotator':<15}  First annotation"
    )
    total_tokens = 0
    total_token_chars = 0
    for i, tier in enumerate(doc.tiers, start=1):
        tokens = tokenize(tier.values())
        total_tokens += len(tokens)
        total_token_chars += sum(len(t) for t in tokens)
        tokenized = "yes" if doc.is_tokenized(tier.tier_id) else "no"
        first = tier.annotations[0].value if tier.annotations else None
        token_counts = f"{len(set(tokens))}/{len(tokens)}"
        lines.append(
            f"{i:>3}  {_truncate(tier.tier_id, ID_WIDTH):<{ID_WIDTH}}  "
            f"{_truncate(tier.parent_ref, ID_WIDTH):<{ID_WIDTH}}  {tokenized:<3}  {len(tier):>6}  "
            f"{token_counts:>13}  {_truncate(tier.participant, 15):<15}  "
            f"{_truncate(tier.annotator, 15):<15}  {_truncate(first, PREVIEW_WIDTH)}"
        )

    lines.extend(_section("Summary"))
    lines.append(f"  Tiers:                      {doc.tier_count()}")
    lines.append(f"  Annotations:                {doc.annotation_count()}")
    lines.append(f"  Annotations/tier (average): {doc.average_annotations_per_tier():.2f}")
    for label, found in (("First annotation:", doc.first_annotation()), ("Last annotation:", doc.last_annotation())):
        if found is None:
            lines.append(f"  {label:<28}-")
        else:
            tier, annotation, start, end = found
            lines.append(
                f"  {label:<28}'{_truncate(annotation.value, PREVIEW_WIDTH)}' "
                f"({start} ms - {end} ms, tier '{tier.tier_id}')"
            )
    lines.append(f"  Tokens (total):             {total_tokens}")
    average_length = total_token_chars / total_tokens if total_tokens else 0.0
    lines.append(f"  Token length (average):     {average_length:.2f}")
    return "\n".join(lines)

def _format_details(doc: EafDocument) -> List[str]:
    lines = _section("General")
    lines.append(f"  Author:  {doc.author or '-'}")
    lines.append(f"  Date:    {doc.date or '-'}")
    lines.append(f"  Version: {doc.version}")

    lines.extend(_section("Media"))
    if not doc.header.media_descriptors:
        lines.append("  None")
    for i, md in enumerate(doc.header.media_descriptors, start=1):
        lines.append(f"  {i:>2}. {md.media_url}")
        lines.append(f"      Relative: {md.relative_media_url or '-'}")
        lines.append(f"      MIME:     {md.mime_type}")
        if md.extracted_from:
            lines.append(f"      Extracted from: {md.extracted_from}")

    lines.extend(_section("Linked files"))
    if not doc.header.linked_file_descriptors:
        lines.append("  None")
    for i, lf in enumerate(doc.header.linked_file_descriptors, start=1):
        lines.append(f"  {i:>2}. {lf.link_url} ({lf.mime_type})")

    lines.extend(_section("Properties"))
    if not doc.header.properties:
        lines.append("  None")
    for prop in doc.header.properties:
        lines.append(f"  {prop.name}: {prop.value}")

    lines.extend(_section("Linguistic types"))
    for lt in doc.linguistic_types:
        lines.append(
            f"  {lt.linguistic_type_id}: time alignable={lt.time_alignable}, "
            f"constraint={lt.constraints or '-'}, controlled vocabulary={lt.controlled_vocabulary or '-'}"
        )

    lines.extend(_section("Locales"))
    for locale in doc.locales:
        parts = [locale.language_code, locale.country_code, locale.variant]
        lines.append("  " + "_".join(p for p in parts if p))

    lines.extend(_section("Languages"))
    if not doc.languages:
        lines.append("  None")
    for language in doc.languages:
        lines.append(f"  {language.lang_id}: {language.lang_label or '-'} ({language.lang_def or '-'})")

    lines.extend(_section("Constraints"))
    for constraint in doc.constraints:
        lines.append(f"  {constraint.stereotype}: {constraint.description or '-'}")

    lines.extend(_section("Controlled vocabularies"))
    if not doc.controlled_vocabularies:
        lines.append("  None")
    for cv in doc.controlled_vocabularies:
        lines.append(f"  {cv.cv_id}: {cv.description or '-'}")
        for entry in cv.entries:
            lang = f" [{entry.lang_ref}]" if entry.lang_ref else ""
            lines.append(f"      {entry.value}{lang}")
    return lines

def format_annotation_list(doc: EafDocument, tier_id: str) -> str:
    """
    Lists every annotation in a tier with its time span.

    Raises:
        TierNotFoundError: If the tier does not exist.
    """
    tier = doc.require_tier(tier_id)
    spans = doc.annotation_spans()
    lines = [f"Tier '{tier.tier_id}' ({len(tier)} annotations)"]
    for i, annotation in enumerate(tier.annotations, start=1):
        start, end = spans.get(annotation.id, (None, None))
        if start is None or end is None:
            lines.append(f"{i:5}. {'':>8}      {'':>8}      '{annotation.value}'")
        else:
            lines.append(f"{i:5}. {start:8} ms - {end:8} ms '{annotation.value}'")
    return "\n".join(lines)

def format_tier_tree(doc: EafDocument) -> str:
    """Draws the tier hierarchy, main tiers sorted by ID."""
    lines = [f"[{doc.path or '<unsaved>'}]"]

    def walk(tier: Tier, depth: int, last: bool) -> None:
        connector = "╰─ " if last else "├─ "
        indent = "   " * depth
        lines.append(f"{indent}{connector}{tier.tier_id} ({len(tier)})")
        children = doc.child_tiers(tier.tier_id)
        for i, child in enumerate(children):
            walk(child, depth + 1, i == len(children) - 1)

    main_tiers = sorted(doc.main_tiers(), key=lambda t: t.tier_id)
    for i, tier in enumerate(main_tiers):
        walk(tier, 0, i == len(main_tiers) - 1)
    return "\n".join(lines)
