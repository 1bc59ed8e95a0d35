"""
Header keyword tables and the parameterized header scorer.

Every column-role decision (header detection, column mapping, fallback
amount columns) classifies header text through classify_header() and
ranks candidates with score_header(). Keyword tables are immutable
module-level constants.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from tbimport.core.models import YearScope

ACCOUNT_PATTERN = re.compile(r"\b(account|ledger|description|particular)")
CATEGORY_PATTERN = re.compile(r"\b(category|categories|class|classification|type|group|heading)\b")
DEBIT_PATTERN = re.compile(r"\bdebit")
CREDIT_PATTERN = re.compile(r"\bcredit")
TRIAL_PATTERN = re.compile(r"\b(trial|trail)\b")
CLOSING_PATTERN = re.compile(r"\bclosing\b")
PREVIOUS_PATTERN = re.compile(r"\b(previous|prior|last)\b")
CURRENT_PATTERN = re.compile(r"\b(current|this)\b")
BALANCE_PATTERN = re.compile(r"\b(balance|amount|net)\b")
YEAR_PATTERN = re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)")
FY_PATTERN = re.compile(r"\bfy\s*\d{2,4}|\bfy\b")

DEBIT_TOKENS = frozenset({"dr", "debits"})
CREDIT_TOKENS = frozenset({"cr", "credits"})
PREVIOUS_TOKENS = frozenset({"py", "ly"})
CURRENT_TOKENS = frozenset({"cy", "ty"})
NAME_TOKENS = frozenset({"name", "title"})
CODE_TOKENS = frozenset({"code", "no", "number", "id", "ref"})

# Closed set of words that fill a category column
CATEGORY_WORDS = frozenset({
    "asset", "assets", "liability", "liabilities", "equity", "capital",
    "income", "revenue", "expense", "expenses", "cost of sales",
    "current assets", "non current assets", "current liabilities",
    "non current liabilities", "other income", "other expenses",
})

SIDE_DEBIT = "debit"
SIDE_CREDIT = "credit"

QUALIFIER_CLOSING = "closing"
QUALIFIER_TRIAL = "trial"

# Score weights for score_header(); explicit so callers can tune them
DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "side": 10.0,
    "qualifier": 5.0,
    "unqualified": 1.0,
    "context_exact": 3.0,
    "context_neutral": 1.0,
    "proximity": 0.25,
})


def cell_text(cell: Any) -> str:
    """Render a cell as stripped text; integral floats lose their '.0'."""
    if cell is None:
        return ""
    if isinstance(cell, float):
        if cell != cell:  # NaN
            return ""
        if cell.is_integer():
            return str(int(cell))
    return str(cell).strip()


def normalize_header(value: Any) -> str:
    """Lowercase and collapse separators/punctuation to single spaces."""
    text = cell_text(value).lower()
    text = re.sub(r"[_/\\\-.:|]+", " ", text)
    text = re.sub(r"[^a-z0-9&\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def header_years(text: str) -> List[int]:
    return [int(year) for year in YEAR_PATTERN.findall(text)]


def detect_years(headers: Iterable[Any]) -> Tuple[Optional[int], Optional[int]]:
    """
    Return (current_year, previous_year) from the years seen in headers.

    The larger of the two most recent distinct years is the current year;
    previous_year is None when only one year appears.
    """
    seen = set()
    for header in headers:
        seen.update(header_years(normalize_header(header)))
    if not seen:
        return None, None
    ordered = sorted(seen, reverse=True)[:2]
    if len(ordered) == 1:
        return ordered[0], None
    return ordered[0], ordered[1]


@dataclass(frozen=True)
class HeaderTraits:
    """Keyword classification of one header."""

    index: int
    text: str
    tokens: frozenset
    year: Optional[int] = None
    is_account: bool = False
    is_category: bool = False
    is_debit: bool = False
    is_credit: bool = False
    is_closing: bool = False
    is_trial: bool = False
    is_balance: bool = False
    has_name: bool = False
    has_code: bool = False
    context: Optional[YearScope] = None

    @property
    def is_amount(self) -> bool:
        return self.is_debit or self.is_credit

    def has_side(self, side: str) -> bool:
        if side == SIDE_DEBIT:
            return self.is_debit and not self.is_credit
        return self.is_credit and not self.is_debit

    def has_qualifier(self, qualifier: Optional[str]) -> bool:
        if qualifier == QUALIFIER_CLOSING:
            return self.is_closing
        if qualifier == QUALIFIER_TRIAL:
            return self.is_trial
        return True

    def in_scope(self, scope: YearScope) -> bool:
        """Headers without a year context count as current year."""
        if scope == YearScope.CURRENT:
            return self.context in (None, YearScope.CURRENT)
        return self.context == YearScope.PREVIOUS


def classify_header(
    index: int,
    header: Any,
    current_year: Optional[int] = None,
    previous_year: Optional[int] = None,
) -> HeaderTraits:
    """Classify one header against the keyword tables."""
    text = normalize_header(header)
    tokens = frozenset(text.split())
    years = header_years(text)
    year = years[0] if years else None

    is_debit = bool(DEBIT_PATTERN.search(text)) or bool(tokens & DEBIT_TOKENS)
    is_credit = bool(CREDIT_PATTERN.search(text)) or bool(tokens & CREDIT_TOKENS)
    is_category = bool(CATEGORY_PATTERN.search(text))
    has_name = bool(tokens & NAME_TOKENS)
    is_account = (
        bool(ACCOUNT_PATTERN.search(text)) and not is_category and not (is_debit or is_credit)
    )

    if PREVIOUS_PATTERN.search(text) or tokens & PREVIOUS_TOKENS:
        context = YearScope.PREVIOUS
    elif CURRENT_PATTERN.search(text) or tokens & CURRENT_TOKENS:
        context = YearScope.CURRENT
    elif year is not None and previous_year is not None and year == previous_year:
        context = YearScope.PREVIOUS
    elif year is not None and current_year is not None and year == current_year:
        context = YearScope.CURRENT
    else:
        context = None

    return HeaderTraits(
        index=index,
        text=text,
        tokens=tokens,
        year=year,
        is_account=is_account,
        is_category=is_category,
        is_debit=is_debit,
        is_credit=is_credit,
        is_closing=bool(CLOSING_PATTERN.search(text)),
        is_trial=bool(TRIAL_PATTERN.search(text)),
        is_balance=bool(BALANCE_PATTERN.search(text)) and not (is_debit or is_credit),
        has_name=has_name,
        has_code=bool(tokens & CODE_TOKENS),
        context=context,
    )


def classify_headers(headers: Sequence[Any]) -> List[HeaderTraits]:
    """Classify every header using the years detected across all of them."""
    current_year, previous_year = detect_years(headers)
    return [classify_header(i, h, current_year, previous_year) for i, h in enumerate(headers)]


def score_header(
    traits: HeaderTraits,
    side: str,
    scope: Optional[YearScope],
    qualifier: Optional[str] = None,
    anchor: Optional[int] = None,
    weights: Mapping[str, float] = DEFAULT_WEIGHTS,
) -> float:
    """
    Score a header as a candidate for one amount slot.

    Args:
        traits: Classified header
        side: SIDE_DEBIT or SIDE_CREDIT
        scope: Required year context (None accepts any context)
        qualifier: QUALIFIER_CLOSING, QUALIFIER_TRIAL or None (any)
        anchor: Column the candidate should sit close to (optional)
        weights: Score weights

    Returns:
        0.0 when the header does not qualify, otherwise a positive score.
    """
    if not traits.has_side(side):
        return 0.0
    if scope is not None and not traits.in_scope(scope):
        return 0.0
    if not traits.has_qualifier(qualifier):
        return 0.0

    score = weights["side"]
    if qualifier is not None:
        score += weights["qualifier"]
    elif not (traits.is_closing or traits.is_trial):
        score += weights["unqualified"]

    if scope is not None:
        score += weights["context_exact"] if traits.context == scope else weights["context_neutral"]

    if anchor is not None:
        score -= weights["proximity"] * abs(traits.index - anchor)
        score = max(score, 0.01)
    return score


def best_header(
    traits_list: Sequence[HeaderTraits],
    side: str,
    scope: Optional[YearScope],
    qualifier: Optional[str] = None,
    anchor: Optional[int] = None,
    exclude: Iterable[int] = (),
    weights: Mapping[str, float] = DEFAULT_WEIGHTS,
) -> Optional[int]:
    """Return the index of the best-scoring qualifying header (lowest index on ties)."""
    excluded = set(exclude)
    best_index, best_score = None, 0.0
    for traits in traits_list:
        if traits.index in excluded:
            continue
        score = score_header(traits, side, scope, qualifier, anchor, weights)
        if score > best_score:
            best_index, best_score = traits.index, score
    return best_index


def is_year_label(value: Any) -> bool:
    """True for year captions: a 4-digit year, FY labels or current/previous phrasing."""
    text = normalize_header(value)
    if not text:
        return False
    if YEAR_PATTERN.search(text) or FY_PATTERN.search(text):
        return True
    tokens = set(text.split())
    return bool(
        re.search(r"\b(current|previous|prior|last|this)\s+(year|period)\b", text)
        or tokens & (PREVIOUS_TOKENS | CURRENT_TOKENS)
    )
