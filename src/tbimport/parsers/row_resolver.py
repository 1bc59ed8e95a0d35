"""
Per-row amount resolution.

For each year scope the explicitly mapped debit/credit pair competes with
auto-detected "Closing" and "Trial" column pairs. A mapped pair that carries
a value is trusted; otherwise the candidate with the most ledger-like shape
(exactly one side populated) wins.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tbimport.core.models import (
    ZERO,
    AmountSet,
    ColumnMapping,
    DualSidedPolicy,
    YearScope,
    is_zero,
)
from tbimport.parsers.keywords import (
    QUALIFIER_CLOSING,
    QUALIFIER_TRIAL,
    SIDE_CREDIT,
    SIDE_DEBIT,
    HeaderTraits,
    best_header,
    classify_headers,
)
from tbimport.parsers.numbers import parse_number

logger = logging.getLogger(__name__)

SOURCE_MAPPED = "mapped"
SOURCE_CLOSING = "closing"
SOURCE_TRIAL = "trial"

SOURCE_BONUS = {SOURCE_CLOSING: 3.0, SOURCE_TRIAL: 2.0, SOURCE_MAPPED: 1.0}
SINGLE_SIDE_BONUS = 100.0
DUAL_SIDE_PENALTY = 40.0
DUAL_SIDE_BALANCE_PENALTY = 30.0
MAGNITUDE_WEIGHT = 0.01

_SCOPE_FIELDS = {
    YearScope.CURRENT: ("debit", "credit"),
    YearScope.PREVIOUS: ("previous_debit", "previous_credit"),
}


@dataclass(frozen=True)
class CandidatePair:
    """A debit/credit column pair and the values read from one row."""

    source: str
    debit_column: Optional[int]
    credit_column: Optional[int]
    debit: Any = ZERO
    credit: Any = ZERO

    @property
    def columns(self) -> Tuple[Optional[int], Optional[int]]:
        return self.debit_column, self.credit_column

    @property
    def has_value(self) -> bool:
        return not (is_zero(self.debit) and is_zero(self.credit))


@dataclass
class RowAmounts:
    """Resolved, not yet sign-normalized amounts of one row."""

    amounts: AmountSet = field(default_factory=AmountSet)
    invalid_fields: List[str] = field(default_factory=list)
    sources: Dict[YearScope, str] = field(default_factory=dict)

    @property
    def has_invalid(self) -> bool:
        return bool(self.invalid_fields)


def score_pair(debit, credit, source: str) -> float:
    """
    Score how ledger-like a candidate pair looks.

    Exactly one side populated earns a large bonus; both sides populated is
    penalized, more so the closer the two sides are to each other. Source
    preference (closing > trial > mapped) and a small magnitude term break
    ties.
    """
    debit_abs, credit_abs = abs(debit), abs(credit)
    debit_set = not is_zero(debit_abs)
    credit_set = not is_zero(credit_abs)

    score = 0.0
    if debit_set != credit_set:
        score += SINGLE_SIDE_BONUS
    elif debit_set and credit_set:
        balance = float(min(debit_abs, credit_abs) / max(debit_abs, credit_abs))
        score -= DUAL_SIDE_PENALTY + DUAL_SIDE_BALANCE_PENALTY * balance

    score += SOURCE_BONUS.get(source, 0.0)
    magnitude = float(max(debit_abs, credit_abs))
    if magnitude > 0:
        score += MAGNITUDE_WEIGHT * math.log10(1.0 + magnitude)
    return score


def collapse_dual_sided(debit, credit, policy: DualSidedPolicy = DualSidedPolicy.DOMINANT):
    """
    Collapse a pair with both sides populated.

    DOMINANT keeps only the larger-magnitude side and drops the smaller one.
    This is kept as a known, configurable behavior: the dropped value is lost.
    NET keeps debit - credit on the debit side for the normalizer to re-sign.
    """
    if is_zero(debit) or is_zero(credit):
        return debit, credit
    if policy == DualSidedPolicy.NET:
        return debit - credit, ZERO
    if abs(debit) >= abs(credit):
        return debit, ZERO
    return ZERO, credit


class RowResolver:
    """
    Resolves the four amounts of data rows for one sheet.

    Candidate Closing/Trial pairs depend only on the headers and mapping, so
    they are computed once per sheet and reused for every row.
    """

    def __init__(
        self,
        headers: Sequence[Any],
        mapping: ColumnMapping,
        policy: DualSidedPolicy = DualSidedPolicy.DOMINANT,
    ):
        self.headers = list(headers)
        self.mapping = mapping
        self.policy = policy
        self._traits = classify_headers(self.headers)
        self._candidates = {
            scope: self._candidate_columns(scope) for scope in (YearScope.CURRENT, YearScope.PREVIOUS)
        }

    def _candidate_columns(self, scope: YearScope) -> List[Tuple[str, Tuple[Optional[int], Optional[int]]]]:
        mapped = self.mapping.scope_columns(scope)
        anchor = next((c for c in mapped if c is not None), None)
        # Columns holding the other fields are never read as amounts
        reserved = {c for name, c in self.mapping.assigned().items() if name not in _SCOPE_FIELDS[scope]}

        candidates = [(SOURCE_MAPPED, mapped)]
        for qualifier, source in ((QUALIFIER_CLOSING, SOURCE_CLOSING), (QUALIFIER_TRIAL, SOURCE_TRIAL)):
            pair = _qualified_pair(self._traits, scope, qualifier, anchor, reserved)
            if pair != (None, None) and pair != mapped:
                candidates.append((source, pair))
        return candidates

    def resolve(self, row: Sequence[Any]) -> RowAmounts:
        result = RowAmounts()
        amounts = AmountSet()

        for scope in (YearScope.CURRENT, YearScope.PREVIOUS):
            pairs = []
            for source, (debit_col, credit_col) in self._candidates[scope]:
                debit, debit_ok = _read_cell(row, debit_col)
                credit, credit_ok = _read_cell(row, credit_col)
                if source == SOURCE_MAPPED:
                    debit_name, credit_name = _SCOPE_FIELDS[scope]
                    if not debit_ok:
                        result.invalid_fields.append(debit_name)
                    if not credit_ok:
                        result.invalid_fields.append(credit_name)
                pairs.append(CandidatePair(source, debit_col, credit_col, debit, credit))

            chosen = self._choose(scope, pairs)
            debit, credit = collapse_dual_sided(chosen.debit, chosen.credit, self.policy)
            amounts = amounts.with_pair(scope, debit, credit)
            result.sources[scope] = chosen.source

        result.amounts = amounts
        return result

    def _choose(self, scope: YearScope, pairs: List[CandidatePair]) -> CandidatePair:
        mapped = pairs[0]
        fallbacks = pairs[1:]
        if self.mapping.has_scope(scope):
            if mapped.has_value or not any(p.has_value for p in fallbacks):
                return mapped
        elif not fallbacks:
            return mapped

        best = max(pairs, key=lambda p: score_pair(p.debit, p.credit, p.source))
        if best is not mapped:
            logger.debug(f"Row amounts for {scope.value} year taken from {best.source} columns {best.columns}")
        return best


def _qualified_pair(
    traits: Sequence[HeaderTraits],
    scope: YearScope,
    qualifier: str,
    anchor: Optional[int],
    reserved,
) -> Tuple[Optional[int], Optional[int]]:
    debit = best_header(traits, SIDE_DEBIT, scope, qualifier, anchor=anchor, exclude=reserved)
    exclude = set(reserved)
    if debit is not None:
        exclude.add(debit)
    credit = best_header(traits, SIDE_CREDIT, scope, qualifier,
                         anchor=anchor if anchor is not None else debit, exclude=exclude)
    return debit, credit


def _read_cell(row: Sequence[Any], column: Optional[int]):
    """Return (value, is_valid); unmapped and out-of-range cells read as zero."""
    if column is None or column >= len(row):
        return ZERO, True
    parsed = parse_number(row[column])
    if not parsed.is_valid:
        return ZERO, False
    return parsed.value, True


def resolve_row(
    row: Sequence[Any],
    headers: Sequence[Any],
    mapping: ColumnMapping,
    policy: DualSidedPolicy = DualSidedPolicy.DOMINANT,
) -> RowAmounts:
    """Resolve the four amounts of one data row (before sign normalization)."""
    return RowResolver(headers, mapping, policy).resolve(row)
