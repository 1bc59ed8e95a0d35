"""
Column role resolution.

Assigns each spreadsheet column to a logical field (Account, Category,
Current/Previous Debit/Credit). Header keywords are tried first; when they
leave a role unresolved the data itself is profiled (numeric vs textual
columns, category-word density).
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from tbimport.core.models import ColumnMapping, YearScope
from tbimport.parsers.keywords import (
    CATEGORY_WORDS,
    QUALIFIER_CLOSING,
    QUALIFIER_TRIAL,
    SIDE_CREDIT,
    SIDE_DEBIT,
    HeaderTraits,
    best_header,
    cell_text,
    classify_headers,
    normalize_header,
)
from tbimport.parsers.numbers import is_numeric_cell

logger = logging.getLogger(__name__)

PROFILE_SAMPLE_ROWS = 200

_ALPHA = re.compile(r"[A-Za-z]")

# Keyword stages tried in order for each year's debit/credit pair
_KEYWORD_STAGES = (QUALIFIER_CLOSING, QUALIFIER_TRIAL, None)


@dataclass
class ColumnProfile:
    """Cell statistics of one column over the sampled rows."""
    index: int
    non_empty: int = 0
    numeric: int = 0
    text: int = 0
    category_hits: int = 0
    distinct_text: int = 0

    @property
    def numeric_density(self) -> float:
        return self.numeric / self.non_empty if self.non_empty else 0.0

    @property
    def category_density(self) -> float:
        return self.category_hits / self.non_empty if self.non_empty else 0.0

    @property
    def text_score(self) -> float:
        """High for textual, diverse columns (account names)."""
        if not self.text:
            return 0.0
        return self.text * (self.distinct_text / self.text)


def profile_columns(
    sample_rows: Sequence[Sequence[Any]],
    column_count: int,
    max_rows: int = PROFILE_SAMPLE_ROWS,
) -> List[ColumnProfile]:
    """Profile up to max_rows rows per column."""
    profiles = [ColumnProfile(index=i) for i in range(column_count)]
    distinct: List[Set[str]] = [set() for _ in range(column_count)]

    for row in list(sample_rows)[:max_rows]:
        for i in range(column_count):
            cell = row[i] if i < len(row) else None
            text = cell_text(cell)
            if not text:
                continue
            profile = profiles[i]
            profile.non_empty += 1
            if is_numeric_cell(cell):
                profile.numeric += 1
            if _ALPHA.search(text):
                profile.text += 1
                distinct[i].add(text.lower())
            if normalize_header(text) in CATEGORY_WORDS:
                profile.category_hits += 1

    for profile, values in zip(profiles, distinct):
        profile.distinct_text = len(values)
    return profiles


def _account_header_score(traits: HeaderTraits) -> float:
    score = 2.0
    if traits.has_name:
        score += 1.0
    if traits.has_code:
        score -= 2.5
    return score


def _resolve_account(traits_list: Sequence[HeaderTraits]) -> Optional[int]:
    best_index, best_score = None, None
    for traits in traits_list:
        if not traits.is_account:
            continue
        score = _account_header_score(traits)
        if best_score is None or score > best_score:
            best_index, best_score = traits.index, score
    return best_index


def _resolve_category(traits_list: Sequence[HeaderTraits], claimed: Set[int]) -> Optional[int]:
    for traits in traits_list:
        if traits.is_category and traits.index not in claimed:
            return traits.index
    return None


def _resolve_pair(
    traits_list: Sequence[HeaderTraits],
    scope: YearScope,
    claimed: Set[int],
) -> Tuple[Optional[int], Optional[int]]:
    """
    Resolve the (debit, credit) columns of one year scope.

    Both sides come from the same keyword stage: the first stage that yields
    a complete pair wins, otherwise the first stage that yields either side.
    """
    partial = None
    for qualifier in _KEYWORD_STAGES:
        debit = best_header(traits_list, SIDE_DEBIT, scope, qualifier, exclude=claimed)
        credit = best_header(traits_list, SIDE_CREDIT, scope, qualifier, anchor=debit,
                             exclude=claimed | ({debit} if debit is not None else set()))
        if debit is not None and credit is not None:
            return debit, credit
        if partial is None and (debit is not None or credit is not None):
            partial = (debit, credit)
    return partial or (None, None)


def guess_mapping(
    headers: Sequence[Any],
    sample_rows: Sequence[Sequence[Any]] = (),
    max_sample_rows: int = PROFILE_SAMPLE_ROWS,
) -> ColumnMapping:
    """
    Guess a default column mapping.

    Keyword order per year: Closing pair in the year context, then Trial
    pair, then any Debit/Credit pair in context; debit and credit always
    come from the same stage. Then (current year only, after both years had
    their turn) the first unclaimed Debit/Credit header regardless of
    context. Unresolved roles fall back to column profiling of sample_rows.
    No two fields share a column.
    """
    traits_list = classify_headers(headers)
    claimed: Set[int] = set()
    slots: Dict[str, Optional[int]] = {}

    slots["account"] = _resolve_account(traits_list)
    if slots["account"] is not None:
        claimed.add(slots["account"])

    slots["category"] = _resolve_category(traits_list, claimed)
    if slots["category"] is not None:
        claimed.add(slots["category"])

    pair_names = {
        YearScope.CURRENT: ("debit", "credit"),
        YearScope.PREVIOUS: ("previous_debit", "previous_credit"),
    }
    for scope, names in pair_names.items():
        for name, index in zip(names, _resolve_pair(traits_list, scope, claimed)):
            slots[name] = index
            if index is not None:
                claimed.add(index)

    # Last resort: any unclaimed Debit/Credit header, whatever its context
    for side, name in ((SIDE_DEBIT, "debit"), (SIDE_CREDIT, "credit")):
        if slots[name] is None:
            slots[name] = best_header(traits_list, side, None, None, exclude=claimed)
            if slots[name] is not None:
                claimed.add(slots[name])

    # Signed balance column when there is no Debit/Credit header at all
    if slots["debit"] is None and slots["credit"] is None and not any(t.is_amount for t in traits_list):
        for traits in traits_list:
            if traits.is_balance and traits.index not in claimed:
                slots["debit"] = traits.index
                claimed.add(traits.index)
                break

    needs_profile = (
        slots["account"] is None
        or slots["category"] is None
        or (slots["debit"] is None and slots["credit"] is None)
        or (slots["previous_debit"] is None and slots["previous_credit"] is None)
    )
    if needs_profile and sample_rows:
        _apply_statistical_fallback(slots, claimed, sample_rows, len(headers), max_sample_rows)

    mapping = ColumnMapping(**slots)
    logger.debug(f"Guessed column mapping: {mapping.assigned()}")
    return mapping


def _apply_statistical_fallback(
    slots: Dict[str, Optional[int]],
    claimed: Set[int],
    sample_rows: Sequence[Sequence[Any]],
    column_count: int,
    max_sample_rows: int,
) -> None:
    """
    Fill unresolved roles from column statistics.

    Account: most textual and diverse column. Category: highest density of
    category words. Amounts: unclaimed columns ranked by numeric density;
    the top two (in column order) become the current pair and the next two
    the previous pair. The previous pair is only filled this way when the
    current pair was too, so an account-code column next to keyword-mapped
    amounts is never promoted to prior-year data.
    """
    profiles = profile_columns(sample_rows, column_count, max_sample_rows)

    if slots["account"] is None:
        candidates = [p for p in profiles if p.index not in claimed and p.text_score > 0]
        if candidates:
            pick = max(candidates, key=lambda p: (p.text_score, -p.index))
            slots["account"] = pick.index
            claimed.add(pick.index)

    if slots["category"] is None:
        candidates = [p for p in profiles if p.index not in claimed and p.category_hits > 0]
        if candidates:
            pick = max(candidates, key=lambda p: (p.category_density, -p.index))
            slots["category"] = pick.index
            claimed.add(pick.index)

    current_missing = slots["debit"] is None and slots["credit"] is None
    previous_missing = slots["previous_debit"] is None and slots["previous_credit"] is None
    if not current_missing:
        return

    numeric = [p for p in profiles if p.index not in claimed and p.numeric > 0]
    numeric.sort(key=lambda p: (-p.numeric_density, p.index))

    current_pair = sorted(p.index for p in numeric[:2])
    if len(current_pair) == 1:
        # A single numeric column is a signed balance
        slots["debit"] = current_pair[0]
    elif current_pair:
        slots["debit"], slots["credit"] = current_pair
    claimed.update(current_pair)

    if previous_missing:
        previous_pair = sorted(p.index for p in numeric[2:4])
        if len(previous_pair) == 2:
            slots["previous_debit"], slots["previous_credit"] = previous_pair
            claimed.update(previous_pair)
