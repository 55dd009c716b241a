"""String clean-up and tokenization helpers."""

import re
from typing import Iterable, List, Optional, Pattern

# Characters commonly used as annotation markup
COMMON_PREFIXES = "#*_<{([-\"'="
COMMON_SUFFIXES = "#*_>})]-\"'=.,:;!?"

# Removed from clip file names and, optionally, before counting n-grams
REMOVE_PATTERN = re.compile(r"[\"'#*<>{}()\[\].,:;!/?=\\_-]")

def process_string(
    value: str,
    ascii_sub: Optional[str] = None,
    whitespace_sub: Optional[str] = None,
    remove: Optional[Pattern] = None,
    max_len: Optional[int] = None,
) -> str:
    """
    Cleans up a string, e.g. an annotation value used in a file name.

    Args:
        value: The string to process.
        ascii_sub: Replacement for non-ASCII characters.
        whitespace_sub: Replacement for whitespace.
        remove: Pattern whose matches are deleted.
        max_len: Maximum number of characters, applied first.

    Returns:
        The processed string. Without any option set, `value` is returned unchanged.
    """
    if max_len is not None:
        value = value[:max_len]
    if remove is not None:
        value = remove.sub("", value)
    if whitespace_sub is not None or ascii_sub is not None:
        value = value.strip()
    if whitespace_sub is not None:
        value = re.sub(r"\s", whitespace_sub, value)
    if ascii_sub is not None:
        value = "".join(c if c.isascii() else ascii_sub for c in value)
    return value

def strip_affixes(token: str, prefix: Optional[str] = None, suffix: Optional[str] = None) -> str:
    """Removes any leading characters in `prefix` and trailing characters in `suffix`."""
    if prefix:
        token = token.lstrip(prefix)
    if suffix:
        token = token.rstrip(suffix)
    return token

def tokenize(
    values: Iterable[str],
    prefix: Optional[str] = None,
    suffix: Optional[str] = None,
    unique: bool = False,
    ignore_case: bool = False,
) -> List[str]:
    """
    Splits annotation values into whitespace-separated tokens.

    Args:
        values: Annotation values.
        prefix: Characters to strip from the start of each token.
        suffix: Characters to strip from the end of each token.
        unique: Keep only the first occurrence of each token.
        ignore_case: Lowercase tokens before comparing.

    Returns:
        Tokens in document order. Tokens that are empty after stripping are dropped.
    """
    tokens = []
    seen = set()
    for value in values:
        for token in value.split():
            token = strip_affixes(token, prefix, suffix)
            if not token:
                continue
            if ignore_case:
                token = token.lower()
            if unique:
                if token in seen:
                    continue
                seen.add(token)
            tokens.append(token)
    return tokens
