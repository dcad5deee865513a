"""Subtitle text normalization and bag-of-words cosine similarity."""

import gzip
import math
import re
import zlib
from collections import Counter

import chardet
from loguru import logger

# Samples with fewer qualifying tokens than this never score above 0
MIN_TOKENS = 300

GZIP_MAGIC = b"\x1f\x8b"

STOPWORDS = frozenset(
    """
    a about above after again against ain all am an and any are aren as at be because been
    before being below between both but by can could couldn d did didn do does doesn doing
    don down during each few for from further had hadn has hasn have haven having he her here
    hers herself him himself his how i if in into is isn it its itself just ll m ma me mightn
    more most mustn my myself needn no nor not now o of off on once only or other our ours
    ourselves out over own re s same shan she should shouldn so some such t than that the their
    theirs them themselves then there these they this those through to too under until up ve
    very was wasn we were weren what when where which while who whom why will with won would
    wouldn y you your yours yourself yourselves
    """.split()
)

_NON_WORD = re.compile(r"[\W_]+")
_SEQUENCE_INDEX = re.compile(r"^\d+$")


def normalize(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    text = _NON_WORD.sub(" ", text.lower())
    return " ".join(text.split())


def subtitle_text(raw: str) -> str:
    """Reduce SRT-formatted text to normalized dialogue.

    Sequence index lines and timing lines (anything containing ``-->``) are dropped.
    """
    lines = []
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or _SEQUENCE_INDEX.match(stripped) or "-->" in stripped:
            continue
        lines.append(stripped)
    return normalize(" ".join(lines))


def token_frequencies(text: str) -> Counter:
    """Count tokens of length > 1 that are not stopwords."""
    tokens = normalize(text).split()
    return Counter(t for t in tokens if len(t) > 1 and t not in STOPWORDS)


def similarity(left: str, right: str) -> float:
    """Cosine similarity of the token frequency vectors of two samples.

    Returns 0.0 when either sample has fewer than ``MIN_TOKENS`` qualifying
    tokens, so short or empty tracks never produce a confident match.
    """
    left_counts = token_frequencies(left)
    right_counts = token_frequencies(right)
    if sum(left_counts.values()) < MIN_TOKENS or sum(right_counts.values()) < MIN_TOKENS:
        return 0.0

    # Iterate the smaller vector
    if len(left_counts) > len(right_counts):
        left_counts, right_counts = right_counts, left_counts
    dot = sum(count * right_counts.get(token, 0) for token, count in left_counts.items())

    left_norm = math.sqrt(sum(c * c for c in left_counts.values()))
    right_norm = math.sqrt(sum(c * c for c in right_counts.values()))
    if left_norm == 0 or right_norm == 0:
        return 0.0
    return min(1.0, max(0.0, dot / (left_norm * right_norm)))


def decode_subtitle_bytes(data: bytes) -> str:
    """Decode a subtitle payload, transparently gunzipping it first.

    Tries UTF-8, then the encoding chardet detects, then Latin-1 (which
    accepts any byte sequence).
    """
    if data[:2] == GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            logger.warning(f"Gzip header present but payload did not decompress: {e}")

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass

    detected = chardet.detect(data).get("encoding")
    if detected:
        try:
            text = data.decode(detected)
            logger.debug(f"Decoded subtitle payload as {detected}")
            return text
        except (UnicodeDecodeError, LookupError):
            pass

    return data.decode("latin-1")


def full_text_from_bytes(data: bytes) -> str | None:
    """Normalized dialogue of a subtitle payload, or None when nothing usable remains."""
    text = subtitle_text(decode_subtitle_bytes(data))
    return text or None
