"""
Monte Carlo harmonisation of fish consumption frequencies.

Each subject reports how often four fish types are eaten on an 8-level
frequency scale. Every level stands for a range of meals per month, so the
total monthly intake is only known up to the sum of four intervals. The
harmonisation samples plausible monthly counts within each interval, sums
them and reports how the simulated totals fall into three bands:

    A = fewer than 1 meal per month
    B = 1 to 3 meals per month
    C = more than 3 meals per month
"""

import numbers
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import MissingColumnsError, ValidationError


FISH_VARS = ("sea_fish", "river_fish", "frozen_fish", "canned_fish")

CATEGORIES = ("A", "B", "C")
CATEGORY_LABELS = {"A": "low", "B": "moderate", "C": "high"}

# Band limits in meals per month
LOW_CUTOFF = 1
HIGH_CUTOFF = 3

MIN_CODE = 1
MAX_CODE = 8


@dataclass(frozen=True)
class IntervalTable:
    """Monthly consumption interval for each frequency code (1 to 8)."""
    min_monthly: Tuple[float, ...] = (0, 0, 1, 4, 8, 20, 28, 31)
    max_monthly: Tuple[float, ...] = (0, 1, 3, 4, 16, 24, 31, 60)

    def __post_init__(self):
        n_codes = MAX_CODE - MIN_CODE + 1
        if len(self.min_monthly) != n_codes or len(self.max_monthly) != n_codes:
            raise ValueError(f"Interval table needs exactly {n_codes} entries per bound")
        for lo, hi in zip(self.min_monthly, self.max_monthly):
            if lo > hi:
                raise ValueError(f"Interval lower bound {lo} exceeds upper bound {hi}")
        if np.any(np.diff(self.min_monthly) < 0) or np.any(np.diff(self.max_monthly) < 0):
            raise ValueError("Interval bounds must not decrease as the code increases")

    @property
    def codes(self) -> range:
        return range(MIN_CODE, MAX_CODE + 1)

    def interval(self, code: int) -> Tuple[float, float]:
        """Return the (min, max) monthly count for a frequency code."""
        if code not in self.codes:
            raise ValidationError(f"Invalid fish frequency code {code!r} (must be 1-8)")
        idx = code - MIN_CODE
        return self.min_monthly[idx], self.max_monthly[idx]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "code": list(self.codes),
            "min_m": self.min_monthly,
            "max_m": self.max_monthly
        })


DEFAULT_INTERVALS = IntervalTable()


@dataclass(frozen=True)
class SubjectRecord:
    """One subject's frequency codes plus any other columns of the input row."""
    sea: Optional[int]
    river: Optional[int]
    frozen: Optional[int]
    canned: Optional[int]
    passthrough: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "passthrough", MappingProxyType(dict(self.passthrough)))

    @property
    def codes(self) -> Tuple[Optional[int], ...]:
        return (self.sea, self.river, self.frozen, self.canned)

    @property
    def is_complete(self) -> bool:
        return not any(is_missing(code) for code in self.codes)


@dataclass(frozen=True)
class HarmonizationResult:
    """Harmonised category and the share of simulated totals in each band."""
    category: Optional[str]
    p_a: Optional[float]
    p_b: Optional[float]
    p_c: Optional[float]

    @property
    def is_defined(self) -> bool:
        return self.category is not None

    @property
    def probabilities(self) -> Dict[str, Optional[float]]:
        return {"A": self.p_a, "B": self.p_b, "C": self.p_c}


UNDEFINED = HarmonizationResult(category=None, p_a=None, p_b=None, p_c=None)


def is_missing(value: Any) -> bool:
    """True for None, NaN and pd.NA."""
    if value is None or value is pd.NA:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _as_code(value: Any) -> Optional[int]:
    """Return value as an int code, or None if it is not a whole number in 1..8."""
    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, numbers.Integral):
        code = int(value)
    elif isinstance(value, numbers.Real) and float(value).is_integer():
        # Spreadsheet readers hand back whole numbers as floats
        code = int(value)
    else:
        return None
    if MIN_CODE <= code <= MAX_CODE:
        return code
    return None


def validate_codes(values: Sequence[Any]) -> Tuple[Optional[int], ...]:
    """
    Check one subject's frequency codes.

    Parameters
    ----------
    values : sequence
        Codes in sea, river, frozen, canned order; missing values allowed

    Returns
    -------
    tuple
        The codes as ints, with None for missing values

    Raises
    ------
    ValidationError
        If a non-missing code is not a whole number between 1 and 8
    """
    codes = []
    for name, value in zip(FISH_VARS, values):
        if is_missing(value):
            codes.append(None)
            continue
        code = _as_code(value)
        if code is None:
            raise ValidationError(
                f"Invalid fish frequency code {value!r} for {name} (must be 1-8)",
                invalid=[(None, name, value)]
            )
        codes.append(code)
    return tuple(codes)


def validate_frame(df: pd.DataFrame, columns: Sequence[str] = FISH_VARS) -> None:
    """
    Check every fish frequency code in a table before any simulation runs.

    A single bad value anywhere in the table rejects the whole batch.

    Parameters
    ----------
    df : pd.DataFrame
        Subject table
    columns : sequence of str
        Frequency code columns in sea, river, frozen, canned order

    Raises
    ------
    MissingColumnsError
        If a frequency code column is absent
    ValidationError
        If any non-missing code is outside 1-8 or not a whole number
    """
    missing_cols = [c for c in columns if c not in df.columns]
    if missing_cols:
        raise MissingColumnsError(missing_cols, where="fish data")

    invalid = []
    for col in columns:
        for row, value in df[col].items():
            if not is_missing(value) and _as_code(value) is None:
                invalid.append((row, col, value))

    if invalid:
        shown = ", ".join(f"row {r} {c}={v!r}" for r, c, v in invalid[:10])
        more = f" (and {len(invalid) - 10} more)" if len(invalid) > 10 else ""
        raise ValidationError(
            f"Invalid fish frequency codes detected (must be 1-8): {shown}{more}",
            invalid=invalid
        )


def classify_totals(totals: np.ndarray) -> Tuple[float, float, float]:
    """Return the fraction of totals in bands A, B and C."""
    totals = np.asarray(totals, dtype=float)
    n = len(totals)
    if n == 0:
        raise ValueError("Cannot classify an empty set of totals")

    n_a = np.count_nonzero(totals < LOW_CUTOFF)
    n_b = np.count_nonzero((totals >= LOW_CUTOFF) & (totals <= HIGH_CUTOFF))
    n_c = n - n_a - n_b

    return n_a / n, n_b / n, n_c / n


def assign_category(p_a: float, p_b: float, p_c: float) -> str:
    """Most probable band; exact ties go to the earlier band in A, B, C order."""
    # np.argmax returns the first maximum
    return CATEGORIES[int(np.argmax([p_a, p_b, p_c]))]


def sample_monthly(
    codes: Sequence[int],
    n_sim: int,
    rng: np.random.Generator,
    intervals: IntervalTable = DEFAULT_INTERVALS
) -> np.ndarray:
    """Draw n_sim uniform monthly counts per code, one row per code."""
    draws = np.empty((len(codes), n_sim))
    for i, code in enumerate(codes):
        lo, hi = intervals.interval(code)
        draws[i] = rng.uniform(lo, hi, size=n_sim)
    return draws


def harmonize(
    sea: Any,
    river: Any,
    frozen: Any,
    canned: Any,
    n_sim: int = 5000,
    rng: Optional[np.random.Generator] = None,
    intervals: IntervalTable = DEFAULT_INTERVALS
) -> HarmonizationResult:
    """
    Harmonise one subject's four frequency codes into category A, B or C.

    Parameters
    ----------
    sea, river, frozen, canned : int or missing
        Frequency codes (1-8) for each fish type
    n_sim : int
        Number of Monte Carlo trials (default 5000)
    rng : np.random.Generator, optional
        Random source. Draws 4 * n_sim uniforms for a complete subject
        and nothing for a subject with a missing code.
    intervals : IntervalTable
        Code to monthly-count mapping

    Returns
    -------
    HarmonizationResult
        Most likely category and band probabilities. All fields are None
        when any code is missing. Ties go to the earlier band (A, then B).
    """
    if isinstance(n_sim, bool) or not isinstance(n_sim, numbers.Integral) or n_sim < 1:
        raise ValueError(f"n_sim must be a positive integer, got {n_sim!r}")

    codes = validate_codes((sea, river, frozen, canned))
    if any(code is None for code in codes):
        return UNDEFINED

    if rng is None:
        rng = np.random.default_rng()

    total = sample_monthly(codes, n_sim, rng, intervals).sum(axis=0)
    p_a, p_b, p_c = classify_totals(total)
    category = assign_category(p_a, p_b, p_c)

    return HarmonizationResult(category=category, p_a=p_a, p_b=p_b, p_c=p_c)


def harmonize_record(
    record: SubjectRecord,
    n_sim: int = 5000,
    rng: Optional[np.random.Generator] = None,
    intervals: IntervalTable = DEFAULT_INTERVALS
) -> HarmonizationResult:
    """Harmonise a SubjectRecord."""
    return harmonize(*record.codes, n_sim=n_sim, rng=rng, intervals=intervals)


def records_from_frame(df: pd.DataFrame, columns: Sequence[str] = FISH_VARS) -> List[SubjectRecord]:
    """
    Build one SubjectRecord per row.

    Parameters
    ----------
    df : pd.DataFrame
        Subject table
    columns : sequence of str
        Frequency code columns in sea, river, frozen, canned order

    Returns
    -------
    List[SubjectRecord]
        Records in row order; all other columns are kept as passthrough
    """
    missing_cols = [c for c in columns if c not in df.columns]
    if missing_cols:
        raise MissingColumnsError(missing_cols, where="fish data")

    other_cols = [c for c in df.columns if c not in columns]
    records = []
    for row in df.to_dict(orient="records"):
        codes = [None if is_missing(row[c]) else row[c] for c in columns]
        records.append(SubjectRecord(
            *codes,
            passthrough={c: row[c] for c in other_cols}
        ))
    return records


def subject_generators(n: int, seed: Optional[int] = 123) -> List[np.random.Generator]:
    """Independent random generators, one per subject position."""
    children = np.random.SeedSequence(seed).spawn(n)
    return [np.random.default_rng(child) for child in children]


def harmonize_records(
    records: Sequence[SubjectRecord],
    n_sim: int = 5000,
    seed: Optional[int] = 123,
    n_jobs: int = 1,
    intervals: IntervalTable = DEFAULT_INTERVALS
) -> List[HarmonizationResult]:
    """
    Harmonise a batch of subjects.

    All records are validated before any simulation. Subject i always
    gets the i-th random stream derived from ``seed``, so the output does
    not depend on ``n_jobs``.

    Parameters
    ----------
    records : sequence of SubjectRecord
        Subjects to harmonise
    n_sim : int
        Monte Carlo trials per subject (default 5000)
    seed : int, optional
        Seed for the whole batch (default 123). None gives fresh entropy.
    n_jobs : int
        Number of worker threads (default 1, sequential)
    intervals : IntervalTable
        Code to monthly-count mapping

    Returns
    -------
    List[HarmonizationResult]
        One result per record, in input order
    """
    invalid = []
    for i, record in enumerate(records):
        try:
            validate_codes(record.codes)
        except ValidationError as e:
            invalid.extend((i, col, value) for _, col, value in e.invalid)
    if invalid:
        shown = ", ".join(f"subject {r} {c}={v!r}" for r, c, v in invalid[:10])
        raise ValidationError(
            f"Invalid fish frequency codes detected (must be 1-8): {shown}",
            invalid=invalid
        )

    rngs = subject_generators(len(records), seed)

    def _run(i: int) -> HarmonizationResult:
        return harmonize_record(records[i], n_sim=n_sim, rng=rngs[i], intervals=intervals)

    if n_jobs is None or n_jobs <= 1:
        return [_run(i) for i in range(len(records))]

    with ThreadPoolExecutor(max_workers=n_jobs) as executor:
        return list(executor.map(_run, range(len(records))))


def harmonize_fish(
    df: pd.DataFrame,
    columns: Sequence[str] = FISH_VARS,
    n_sim: int = 5000,
    seed: Optional[int] = 123,
    n_jobs: int = 1,
    intervals: IntervalTable = DEFAULT_INTERVALS,
    category_col: str = "fish_new"
) -> pd.DataFrame:
    """
    Add harmonised fish consumption columns to a subject table.

    Parameters
    ----------
    df : pd.DataFrame
        Subject table with one frequency code column per fish type
    columns : sequence of str
        Frequency code columns in sea, river, frozen, canned order
    n_sim : int
        Monte Carlo trials per subject (default 5000)
    seed : int, optional
        Seed for the batch (default 123)
    n_jobs : int
        Number of worker threads (default 1)
    intervals : IntervalTable
        Code to monthly-count mapping
    category_col : str
        Name of the output category column (default 'fish_new')

    Returns
    -------
    pd.DataFrame
        Copy of df with category_col, 'pA', 'pB' and 'pC' appended.
        Rows with a missing code get NaN in all four columns.

    Raises
    ------
    ValidationError
        If any code in the table is invalid; nothing is simulated
    """
    validate_frame(df, columns)

    records = records_from_frame(df, columns)
    results = harmonize_records(records, n_sim=n_sim, seed=seed, n_jobs=n_jobs, intervals=intervals)

    out = df.copy()
    out[category_col] = pd.Series(
        [r.category if r.is_defined else np.nan for r in results],
        index=df.index, dtype=object
    )
    for col, attr in (("pA", "p_a"), ("pB", "p_b"), ("pC", "p_c")):
        out[col] = pd.Series(
            [getattr(r, attr) if r.is_defined else np.nan for r in results],
            index=df.index, dtype=float
        )

    return out
