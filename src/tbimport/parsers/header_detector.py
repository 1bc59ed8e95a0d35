"""
Header row detection for trial balance sheets.

Exports put their header anywhere below title and metadata rows, and often
spread it over up to three rows:

    row 5:  2024   |        | 2023   |          <- year row
    row 6:  Account|        | Account|          <- label row
    row 7:  Debit  | Credit | Debit  | Credit   <- child (Debit/Credit) row

detect_header_row() locates the most likely header row with a keyword and
shape score; build_composite_headers() then flattens the surrounding
composite header into one string per column ("2024 Debit", ...).
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from tbimport.parsers.keywords import classify_header, cell_text, is_year_label, normalize_header
from tbimport.parsers.numbers import is_numeric_cell

logger = logging.getLogger(__name__)

MAX_SCAN_ROWS = 80
COMPOSITE_WINDOW = 6
LOOKAHEAD_ROWS = 4

MIN_KEYWORD_CATEGORIES = 2
MIN_HEADER_SCORE = 7.0

_ALPHA = re.compile(r"[A-Za-z]")


@dataclass(frozen=True)
class HeaderRowScore:
    """Score breakdown for one candidate header row."""

    index: int
    score: float
    keyword_categories: int


@dataclass(frozen=True)
class CompositeHeader:
    """Flattened header and where the data starts."""

    headers: Tuple[str, ...]
    data_start_index: int
    child_row: Optional[int] = None
    year_row: Optional[int] = None
    label_row: Optional[int] = None


def row_texts(row: Sequence[Any], column_count: Optional[int] = None) -> List[str]:
    texts = [cell_text(cell) for cell in (row or ())]
    if column_count is not None:
        texts = (texts + [""] * column_count)[:column_count]
    return texts


def is_blank_row(row: Sequence[Any]) -> bool:
    return not any(row_texts(row))


def column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def synthetic_headers(column_count: int) -> Tuple[str, ...]:
    return tuple(f"Column {column_letter(i)}" for i in range(column_count))


def _mixes_number_and_text(row: Sequence[Any]) -> bool:
    cells = [cell for cell in (row or ()) if cell_text(cell)]
    has_number = any(is_numeric_cell(cell) for cell in cells)
    has_text = any(_ALPHA.search(cell_text(cell)) for cell in cells)
    return has_number and has_text


def score_header_row(rows: Sequence[Sequence[Any]], index: int) -> HeaderRowScore:
    """
    Score one row as a header candidate.

    Shape: +0.5 per alphabetic cell, -2 per numeric cell, -1.5 for a cell
    longer than 60 chars, -4 for a lone cell, +2 for 2-12 cells.
    Keywords: +6 account-like, +4 category-like, +5 debit, +5 credit,
    +3 account with debit/credit, +2 debit with credit.
    Lookahead: +1 per following row (up to 4) that mixes numbers and text.
    """
    row = rows[index] or ()
    cells = [cell for cell in row if cell_text(cell)]
    texts = [cell_text(cell) for cell in cells]

    score = 0.0
    score += 0.5 * sum(1 for text in texts if _ALPHA.search(text))
    score -= 2.0 * sum(1 for cell in cells if is_numeric_cell(cell))
    if any(len(text) > 60 for text in texts):
        score -= 1.5
    if len(texts) == 1:
        score -= 4.0
    elif 2 <= len(texts) <= 12:
        score += 2.0

    traits = [classify_header(i, text) for i, text in enumerate(texts)]
    has_account = any(t.is_account for t in traits)
    has_category = any(t.is_category for t in traits)
    has_debit = any(t.is_debit for t in traits)
    has_credit = any(t.is_credit for t in traits)

    if has_account:
        score += 6.0
    if has_category:
        score += 4.0
    if has_debit:
        score += 5.0
    if has_credit:
        score += 5.0
    if has_account and (has_debit or has_credit):
        score += 3.0
    if has_debit and has_credit:
        score += 2.0

    for following in rows[index + 1:index + 1 + LOOKAHEAD_ROWS]:
        if _mixes_number_and_text(following):
            score += 1.0

    categories = sum((has_account, has_category, has_debit, has_credit))
    return HeaderRowScore(index=index, score=score, keyword_categories=categories)


def detect_header_row(rows: Sequence[Sequence[Any]], max_scan: int = MAX_SCAN_ROWS) -> Optional[int]:
    """
    Locate the most likely header row.

    Scans up to max_scan non-blank rows. Returns None when the best row
    has fewer than two keyword categories or scores below the threshold;
    callers then fall back to synthetic "Column A, B, ..." headers.
    """
    best: Optional[HeaderRowScore] = None
    scanned = 0
    for index, row in enumerate(rows):
        if is_blank_row(row):
            continue
        if scanned >= max_scan:
            break
        scanned += 1
        candidate = score_header_row(rows, index)
        if best is None or candidate.score > best.score:
            best = candidate

    if best is None:
        return None
    if best.keyword_categories < MIN_KEYWORD_CATEGORIES or best.score < MIN_HEADER_SCORE:
        logger.debug(
            f"No confident header row (best row {best.index}, score {best.score}, "
            f"{best.keyword_categories} keyword categories)"
        )
        return None

    logger.debug(f"Header row detected at {best.index} (score {best.score})")
    return best.index


def _amount_label_density(texts: Sequence[str]) -> int:
    count = 0
    for text in texts:
        if not text:
            continue
        traits = classify_header(0, text)
        if traits.is_debit or traits.is_credit:
            count += 1
    return count


def _is_dimension_label(text: str) -> bool:
    traits = classify_header(0, text)
    return traits.is_account or traits.is_category


def _find_child_row(rows, header_index: int, lo: int, hi: int, column_count: int) -> Optional[int]:
    best_key, best_index = None, None
    for i in range(lo, hi + 1):
        texts = row_texts(rows[i], column_count)
        density = _amount_label_density(texts)
        if i > header_index:
            # Below the header only a Debit/Credit caption row qualifies;
            # the first row carrying numbers is data
            if any(is_numeric_cell(cell) for cell in rows[i] or ()):
                break
            if density < 2 or density != sum(1 for t in texts if t):
                continue
        if density == 0:
            continue
        distance = abs(i - header_index)
        key = (density, -distance, 1 if i <= header_index else 0)
        if best_key is None or key > best_key:
            best_key, best_index = key, i
    return best_index


def _nearest(candidates: List[int], target: int) -> Optional[int]:
    if not candidates:
        return None
    return min(candidates, key=lambda i: (abs(i - target), 0 if i <= target else 1))


def _find_year_row(rows, lo: int, top: int, exclude, column_count: int, target: int,
                   amount_mask: Optional[Sequence[bool]] = None) -> Optional[int]:
    candidates = []
    for i in range(lo, top + 1):
        if i in exclude:
            continue
        cells = row_texts(rows[i], column_count)
        texts = [t for t in cells if t]
        if not texts or not all(len(t) <= 30 and (is_year_label(t) or _is_dimension_label(t)) for t in texts):
            continue
        year_columns = [c for c, t in enumerate(cells) if t and is_year_label(t)]
        if not year_columns:
            continue
        # Year captions sit over the amount columns they qualify
        if amount_mask is not None and not any(amount_mask[c] for c in year_columns):
            continue
        candidates.append(i)
    return _nearest(candidates, target)


def _find_label_row(rows, lo: int, top: int, exclude, column_count: int, target: int) -> Optional[int]:
    candidates = []
    for i in range(lo, top + 1):
        if i in exclude:
            continue
        row = (list(rows[i] or ()) + [None] * column_count)[:column_count]
        texts = [cell_text(cell) for cell in row]
        if any(is_numeric_cell(cell) for cell in row) or any(len(t) > 30 for t in texts):
            continue
        if any(t and _is_dimension_label(t) for t in texts):
            candidates.append(i)
    return _nearest(candidates, target)


def build_composite_headers(
    rows: Sequence[Sequence[Any]],
    header_index: int,
    column_count: int,
    window: int = COMPOSITE_WINDOW,
) -> CompositeHeader:
    """
    Flatten a (possibly multi-row) header into one string per column.

    Within +/- window rows of header_index:
    - child row: strongest Debit/Credit keyword density (closest, then above)
    - year row: year captions over amount columns (Account-style captions
      may sit beside them); forward-filled across amount columns
    - label row: Account/Category-style captions with no numeric cells

    The flat header is year + label + child, deduplicated by normalized text.
    A dimension label ("Account") sitting above a Debit/Credit cell is a
    group caption and is dropped for that column.
    """
    lo = max(0, header_index - window)
    hi = min(len(rows) - 1, header_index + window)

    child = _find_child_row(rows, header_index, lo, hi, column_count)
    top = max(header_index, child if child is not None else header_index)
    anchor = child if child is not None else header_index

    child_texts = row_texts(rows[child], column_count) if child is not None else [""] * column_count
    is_amount_column = [_amount_label_density([text]) > 0 for text in child_texts]

    year = _find_year_row(rows, lo, top, {child}, column_count, anchor,
                          is_amount_column if child is not None else None)
    if header_index not in (child, year):
        label = header_index
    else:
        label = _find_label_row(rows, lo, top, {child, year}, column_count, anchor)

    label_texts = row_texts(rows[label], column_count) if label is not None else [""] * column_count
    year_texts = row_texts(rows[year], column_count) if year is not None else [""] * column_count

    year_fill = _forward_fill(year_texts, is_amount_column if child is not None else None)
    label_fill = _forward_fill(label_texts, is_amount_column if child is not None else [False] * column_count)

    headers = []
    for c in range(column_count):
        label_text = label_fill[c]
        if label_text and is_amount_column[c] and _is_dimension_label(label_text):
            label_text = ""
        parts = [year_fill[c], label_text, child_texts[c]]

        seen, kept = set(), []
        for part in parts:
            key = normalize_header(part)
            if not key or key in seen:
                continue
            seen.add(key)
            kept.append(part.strip())
        headers.append(" ".join(kept) if kept else f"Column {column_letter(c)}")

    used = [i for i in (header_index, child, year, label) if i is not None]
    composite = CompositeHeader(
        headers=tuple(headers),
        data_start_index=max(used) + 1,
        child_row=child,
        year_row=year,
        label_row=label,
    )
    logger.debug(f"Composite header rows child={child} year={year} label={label}: {composite.headers}")
    return composite


def _forward_fill(texts: Sequence[str], fill_mask: Optional[Sequence[bool]]) -> List[str]:
    """
    Forward-fill blank cells from the left.

    With a mask, only blank cells whose mask entry is True are filled
    (a merged caption spanning a Debit/Credit pair); without one every
    blank cell after the first caption is filled.
    """
    filled, current = [], ""
    for c, text in enumerate(texts):
        if text:
            current = text
            filled.append(text)
        elif current and (fill_mask is None or fill_mask[c]):
            filled.append(current)
        else:
            filled.append("")
            if fill_mask is not None:
                current = ""
    return filled


def extract_table(
    rows: Sequence[Sequence[Any]],
    max_scan: int = MAX_SCAN_ROWS,
) -> Tuple[Tuple[str, ...], List[List[Any]], Optional[int], int]:
    """
    Split raw sheet rows into headers and data rows.

    Returns:
        (headers, data_rows, header_row_index, data_start_index); without a
        confident header every non-blank row is data and the headers are
        synthetic.
    """
    column_count = max((len(row or ()) for row in rows), default=0)
    header_index = detect_header_row(rows, max_scan)

    if header_index is None:
        headers = synthetic_headers(column_count)
        data_start = 0
    else:
        composite = build_composite_headers(rows, header_index, column_count)
        headers = composite.headers
        data_start = composite.data_start_index

    data_rows = [
        (list(row or ()) + [None] * column_count)[:column_count]
        for row in rows[data_start:]
        if not is_blank_row(row)
    ]
    return headers, data_rows, header_index, data_start
