"""Fuzzy matching of field-map keys onto native form field names.

Names are normalized into lowercase tokens (camelCase, separators, and
qualified-name prefixes such as ``form[0].page1[0].`` are removed) and
scored by the better of token overlap and character-sequence similarity.
A name with a token that has no counterpart in the other name (``last``
against ``first``) scores zero, so such fields stay empty.
"""

import re
from dataclasses import dataclass
from difflib import SequenceMatcher

from docfill.utils.logger import get_logger

from .plan import NativeField

logger = get_logger(__name__)

_INDEX_SUFFIX = re.compile(r"\[\d+\]")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_MIN_PREFIX = 2
_TYPO_RATIO = 0.8


def tokenize(name: str) -> list[str]:
    """Split a key or field name into normalized lowercase tokens.

    Args:
        name: Field-map key, form field name, or visible label.

    Returns:
        Lowercase alphanumeric tokens.
    """
    name = _INDEX_SUFFIX.sub("", name)
    if "." in name and " " not in name:
        name = name.rsplit(".", 1)[-1]
    name = _CAMEL_BOUNDARY.sub(" ", name)
    return [t for t in _NON_ALNUM.split(name.lower()) if t]


def tokens_compatible(a: str, b: str) -> bool:
    """Return ``True`` if two tokens name the same thing.

    Tokens are compatible when equal, when one abbreviates the other
    (``no``/``number``), or when they differ by a typo.
    """
    if a == b:
        return True
    short, long = sorted((a, b), key=len)
    if len(short) >= _MIN_PREFIX and long.startswith(short):
        return True
    return SequenceMatcher(None, a, b).ratio() >= _TYPO_RATIO


def similarity(a: str, b: str) -> float:
    """Score how alike two names are, from 0.0 to 1.0.

    Every token of the shorter name must have a compatible token in the
    longer one; otherwise the names are scored 0.0, so ``first_name`` never
    matches ``last_name`` however much text they share.

    Args:
        a: First name.
        b: Second name.

    Returns:
        1.0 for names equal after normalization, 0.0 for names with a
        conflicting token, otherwise the larger of the token Dice
        coefficient and the sequence ratio of the joined tokens.
    """
    ta, tb = tokenize(a), tokenize(b)
    if not ta or not tb:
        return 0.0
    joined_a, joined_b = "".join(ta), "".join(tb)
    if joined_a == joined_b:
        return 1.0
    shorter, longer = sorted((ta, tb), key=len)
    if not all(any(tokens_compatible(s, t) for t in longer) for s in shorter):
        return 0.0
    common = len(set(ta) & set(tb))
    dice = 2 * common / (len(set(ta)) + len(set(tb)))
    ratio = SequenceMatcher(None, joined_a, joined_b).ratio()
    return max(dice, ratio)


@dataclass
class FieldMatch:
    """A native field paired with the field-map key chosen for it."""

    field: NativeField
    key: str
    score: float


class FieldMatcher:
    """Chooses the best field-map key for each native field.

    Args:
        threshold: Minimum score for a match to be accepted.
    """

    def __init__(self, threshold: float = 0.6) -> None:
        self.threshold = threshold

    def score(self, key: str, field: NativeField) -> float:
        """Score a key against a field's name and visible label."""
        best = similarity(key, field.name)
        if field.label:
            best = max(best, similarity(key, field.label))
        return best

    def best_key(self, field: NativeField, keys: list[str]) -> FieldMatch | None:
        """Find the best key for one field.

        Ties keep the earliest key.

        Args:
            field: Native field to match.
            keys: Candidate field-map keys in map order.

        Returns:
            The best match, or ``None`` if no key reaches the threshold.
        """
        best: FieldMatch | None = None
        for key in keys:
            score = self.score(key, field)
            if best is None or score > best.score:
                best = FieldMatch(field=field, key=key, score=score)
        if best is None or best.score < self.threshold:
            return None
        return best

    def match(self, fields: list[NativeField], keys: list[str]) -> list[FieldMatch]:
        """Match every native field, leaving low-confidence ones unmapped.

        Args:
            fields: Native fields in document order.
            keys: Field-map keys in map order.

        Returns:
            Accepted matches in field order.
        """
        matches: list[FieldMatch] = []
        for field in fields:
            found = self.best_key(field, keys)
            if found is None:
                logger.debug("No key matches native field '%s'", field.name)
                continue
            logger.debug(
                "Matched '%s' -> '%s' (score=%.2f)", found.key, field.name, found.score
            )
            matches.append(found)
        logger.info("Matched %d of %d native fields", len(matches), len(fields))
        return matches
