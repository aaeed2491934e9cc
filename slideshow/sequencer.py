"""Deterministic ordering of slideshow images.

Camera and sequence numbers embedded in filenames are the strongest ordering
signal, an explicit caller prefix ("0007-") comes next, and input position is
the final tiebreak so that every input set has exactly one order.
"""
from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, Tuple

try:
    import icu  # type: ignore
except ModuleNotFoundError as exc:  # pragma: no cover - import guard
    raise RuntimeError(
        "PyICU is required. Please install it with `pip install PyICU`."
    ) from exc

from logging_utils import get_logger

from .models import ImageReference

logger = get_logger(__name__)

_DIGIT_RUN = re.compile(r"\d+")
_NATURAL_SPLIT = re.compile(r"(\d+)")


def best_numeric_token(name: str) -> Optional[int]:
    """Longest digit run in ``name``; the rightmost one wins a length tie."""
    best: Optional[str] = None
    for match in _DIGIT_RUN.finditer(name):
        run = match.group(0)
        if best is None or len(run) >= len(best):
            best = run
    return int(best) if best is not None else None


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


@lru_cache(maxsize=1)
def _iso_languages() -> frozenset:
    return frozenset(icu.Locale.getISOLanguages())


def locale_collator(locale: Optional[str]) -> Optional["icu.Collator"]:
    """ICU collator for a BCP 47 or POSIX style tag (``sv-SE``, ``de_DE``).

    Returns None for an empty tag or one whose language ICU does not know.
    """
    if not locale:
        return None
    loc = icu.Locale.forLanguageTag(locale.strip().replace("_", "-"))
    if loc.getLanguage() not in _iso_languages():
        logger.warning("Unknown locale %r; image names compare accent-folded", locale)
        return None
    try:
        return icu.Collator.createInstance(loc)
    except icu.ICUError as exc:
        logger.warning("No collator for locale %r (%s); image names compare accent-folded", locale, exc)
        return None


def natural_key(
    name: str, text_key: Callable[[str], object] = _fold
) -> Tuple[Tuple[object, ...], str]:
    """Key comparing digit runs numerically and text runs with ``text_key``.

    ``re.split`` with a capture group puts text at even and digits at odd
    indices, so parts at the same position always have the same type.
    """
    parts: List[object] = []
    for index, part in enumerate(_NATURAL_SPLIT.split(name)):
        parts.append(int(part) if index % 2 else text_key(part))
    return tuple(parts), name


@dataclass(frozen=True)
class _SortItem:
    reference: ImageReference
    position: int
    prefix_index: float
    token: Optional[int]


def _prefix_value(reference: ImageReference) -> float:
    return float(reference.prefix_index) if reference.prefix_index is not None else math.inf


class ImageSequencer:
    """Produce a total order over image references.

    Text runs of file names are collated for ``locale``. Without a locale, or
    for one ICU does not know, they compare accent- and case-folded.
    """

    def __init__(self, locale: Optional[str] = None) -> None:
        self.locale = locale
        collator = locale_collator(locale)
        self._collated = collator is not None
        self._text_key: Callable[[str], object] = collator.getSortKey if collator is not None else _fold

    def order(self, references: Sequence[ImageReference]) -> List[ImageReference]:
        items = [
            _SortItem(
                reference=ref,
                position=position,
                prefix_index=_prefix_value(ref),
                token=best_numeric_token(ref.name_without_prefix),
            )
            for position, ref in enumerate(references)
        ]
        numeric_mode = any(item.token is not None for item in items)
        if numeric_mode:
            items.sort(key=self._numeric_key)
        else:
            items.sort(key=self._name_key)
        logger.debug(
            "Ordered %d images (%s mode, %s)",
            len(items),
            "numeric" if numeric_mode else "name",
            f"locale {self.locale}" if self._collated else "folded names",
        )
        return [item.reference for item in items]

    def _numeric_key(self, item: _SortItem) -> tuple:
        if item.token is None:
            return (1, item.prefix_index, item.position)
        return (
            0,
            item.token,
            natural_key(item.reference.name_without_prefix, self._text_key),
            item.prefix_index,
            item.position,
        )

    def _name_key(self, item: _SortItem) -> tuple:
        return (item.prefix_index, natural_key(item.reference.basename, self._text_key), item.position)
