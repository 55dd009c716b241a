"""Token listings, token distributions and n-gram counts."""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .models import EafDocument
from .text import COMMON_PREFIXES, COMMON_SUFFIXES, REMOVE_PATTERN, tokenize

logger = logging.getLogger(__name__)

NGRAM_SCOPES = ("annotation", "tier", "file")

@dataclass
class TokenOptions:
    """How annotation values are split and normalised into tokens."""
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    strip_common: bool = False
    unique: bool = False
    ignore_case: bool = False

    @property
    def prefixes(self) -> str:
        return (self.prefix or "") + (COMMON_PREFIXES if self.strip_common else "")

    @property
    def suffixes(self) -> str:
        return (self.suffix or "") + (COMMON_SUFFIXES if self.strip_common else "")

def collect_tokens(doc: EafDocument, tier_id: Optional[str] = None,
                   options: Optional[TokenOptions] = None) -> List[str]:
    """
    Tokenizes the annotation values in one tier, or in all tiers.

    Raises:
        TierNotFoundError: If `tier_id` does not exist.
    """
    options = options or TokenOptions()
    if tier_id is not None:
        values = doc.require_tier(tier_id).values()
    else:
        values = [v for tier in doc.tiers for v in tier.values()]
    return tokenize(
        values,
        prefix=options.prefixes or None,
        suffix=options.suffixes or None,
        unique=options.unique,
        ignore_case=options.ignore_case,
    )

def distribution(tokens: List[str], alphabetical: bool = False,
                 reverse: bool = False) -> List[Tuple[str, int]]:
    """
    Counts tokens.

    Sorted by ascending count with ties broken alphabetically, or
    alphabetically when `alphabetical` is set.
    """
    counts = Counter(tokens)
    if alphabetical:
        ordered = sorted(counts.items(), key=lambda item: item[0])
    else:
        ordered = sorted(counts.items(), key=lambda item: (item[1], item[0]))
    if reverse:
        ordered.reverse()
    return ordered

def format_distribution(counts: List[Tuple[str, int]]) -> str:
    return "\n".join(f"{count:>6}: {token}" for token, count in counts)

def format_footer(tokens: List[str], options: TokenOptions) -> str:
    return "\n".join([
        "---",
        f"Count:           {len(tokens)}",
        f"Unique only:     {options.unique}",
        f"Ignore case:     {options.ignore_case}",
        f"Strip prefixes:  {options.prefixes or '-'}",
        f"Strip suffixes:  {options.suffixes or '-'}",
    ])

def ngrams(words: List[str], size: int) -> List[Tuple[str, ...]]:
    """Consecutive word sequences of length `size`."""
    if size < 1:
        raise ValueError(f"n-gram size must be at least 1, got {size}")
    return [tuple(words[i:i + size]) for i in range(len(words) - size + 1)]

def count_ngrams(
    doc: EafDocument,
    size: int = 2,
    scope: str = "annotation",
    tier_id: Optional[str] = None,
    ignore_case: bool = False,
    remove_common: bool = False,
    remove_custom: Optional[str] = None,
) -> Counter:
    """
    Counts n-grams across annotation values.

    Args:
        doc: The document.
        size: Number of words per n-gram.
        scope: 'annotation' keeps n-grams within single annotations, 'tier'
               joins each tier's annotations, 'file' joins every tier.
        tier_id: Only count this tier.
        ignore_case: Lowercase before counting.
        remove_common: Delete the common markup characters first.
        remove_custom: Further characters to delete.

    Returns:
        Counter mapping n-gram tuples to counts.

    Raises:
        ValueError: For an unknown scope or a size below 1.
        TierNotFoundError: If `tier_id` does not exist.
    """
    if scope not in NGRAM_SCOPES:
        raise ValueError(f"Unknown n-gram scope '{scope}'. Choose one of: {', '.join(NGRAM_SCOPES)}")
    tiers = [doc.require_tier(tier_id)] if tier_id is not None else doc.tiers

    patterns = []
    if remove_common:
        patterns.append(REMOVE_PATTERN)
    if remove_custom:
        patterns.append(re.compile(f"[{re.escape(remove_custom)}]"))

    def words(value: str) -> List[str]:
        for pattern in patterns:
            value = pattern.sub("", value)
        if ignore_case:
            value = value.lower()
        return value.split()

    groups: List[List[str]] = []
    if scope == "annotation":
        groups = [words(a.value) for tier in tiers for a in tier.annotations]
    elif scope == "tier":
        groups = [[w for a in tier.annotations for w in words(a.value)] for tier in tiers]
    else:
        groups = [[w for tier in tiers for a in tier.annotations for w in words(a.value)]]

    counts: Counter = Counter()
    for group in groups:
        counts.update(ngrams(group, size))
    logger.info(f"Counted {sum(counts.values())} {size}-grams ({len(counts)} distinct) with scope '{scope}'")
    return counts

def format_ngrams(counts: Counter) -> str:
    """One line per n-gram, ascending by count."""
    ordered = sorted(counts.items(), key=lambda item: (item[1], item[0]))
    return "\n".join(f"{count:>6}: {' '.join(gram)}" for gram, count in ordered)
