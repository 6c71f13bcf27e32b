"""
BMI-for-age z-scores from a WHO-style LMS growth reference.
"""

import pandas as pd
import numpy as np
from typing import Union

from .exceptions import MissingColumnsError

ArrayLike = Union[float, np.ndarray, pd.Series]

DAYS_PER_MONTH = 365.25 / 12

# Sex coding used across the pooled studies
MALE = 1
FEMALE = 2

LMS_COLUMNS = ("sex", "age", "l", "m", "s")


def add_age_days(df: pd.DataFrame, age_col: str = "age") -> pd.DataFrame:
    """
    Add age in months and days from age in years.

    Parameters
    ----------
    df : pd.DataFrame
        Dataset with age in years
    age_col : str
        Name of age column

    Returns
    -------
    pd.DataFrame
        Dataset with 'age_months' and 'age_days' added
    """
    df = df.copy()
    df["age_months"] = df[age_col] * 12
    df["age_days"] = df["age_months"] * DAYS_PER_MONTH
    return df


def compute_bmi(weight_kg: ArrayLike, height_cm: ArrayLike) -> ArrayLike:
    """Body mass index in kg/m^2."""
    return weight_kg / (height_cm / 100) ** 2


def _lms_value(z: float, l: np.ndarray, m: np.ndarray, s: np.ndarray) -> np.ndarray:
    """Measurement at z standard deviations for the given LMS parameters."""
    with np.errstate(divide="ignore", invalid="ignore"):
        box_cox = m * (1 + l * s * z) ** (1 / l)
    return np.where(l == 0, m * np.exp(s * z), box_cox)


def lms_zscore(y: ArrayLike, l: ArrayLike, m: ArrayLike, s: ArrayLike) -> np.ndarray:
    """
    LMS z-score with the WHO adjustment beyond +/-3 SD.

    Parameters
    ----------
    y : array-like
        Measurement (e.g. BMI)
    l, m, s : array-like
        Box-Cox power, median and coefficient of variation

    Returns
    -------
    np.ndarray
        z-scores; NaN wherever an input is missing
    """
    y = np.asarray(y, dtype=float)
    l = np.asarray(l, dtype=float)
    m = np.asarray(m, dtype=float)
    s = np.asarray(s, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        z = np.where(
            l == 0,
            np.log(y / m) / s,
            ((y / m) ** l - 1) / (l * s)
        )

    # Above +3 and below -3 the distance is measured in units of the 2-3 SD gap
    sd3_pos = _lms_value(3, l, m, s)
    sd2_pos = _lms_value(2, l, m, s)
    sd3_neg = _lms_value(-3, l, m, s)
    sd2_neg = _lms_value(-2, l, m, s)

    with np.errstate(divide="ignore", invalid="ignore"):
        z_high = 3 + (y - sd3_pos) / (sd3_pos - sd2_pos)
        z_low = -3 + (y - sd3_neg) / (sd2_neg - sd3_neg)

    z = np.where(z > 3, z_high, z)
    z = np.where(z < -3, z_low, z)
    return z


def interpolate_lms(
    reference: pd.DataFrame,
    sex: ArrayLike,
    age: ArrayLike
) -> pd.DataFrame:
    """
    Interpolate L, M and S for each subject from a growth reference.

    Parameters
    ----------
    reference : pd.DataFrame
        LMS table with columns 'sex', 'age', 'l', 'm', 's'. Age must be in
        the same unit as the subjects' ages.
    sex : array-like
        Subject sex (1 = male, 2 = female)
    age : array-like
        Subject age

    Returns
    -------
    pd.DataFrame
        Columns 'l', 'm', 's', one row per subject. Rows are NaN for
        unknown sex, missing age or age outside the reference range.
    """
    missing = [c for c in LMS_COLUMNS if c not in reference.columns]
    if missing:
        raise MissingColumnsError(missing, where="LMS reference")

    sex = np.asarray(sex, dtype=float)
    age = np.asarray(age, dtype=float)
    out = np.full((len(age), 3), np.nan)

    for sex_code, ref in reference.groupby("sex"):
        ref = ref.sort_values("age")
        rows = sex == sex_code
        if not rows.any():
            continue
        for j, param in enumerate(("l", "m", "s")):
            out[rows, j] = np.interp(
                age[rows], ref["age"].values, ref[param].values,
                left=np.nan, right=np.nan
            )

    return pd.DataFrame(out, columns=["l", "m", "s"])


def add_bmi_zscores(
    df: pd.DataFrame,
    reference: pd.DataFrame,
    sex_col: str = "sex",
    weight_col: str = "weight",
    height_col: str = "height",
    age_col: str = "age_days",
    output: str = "bmi_z",
    digits: int = 3
) -> pd.DataFrame:
    """
    Add BMI and BMI-for-age z-scores.

    Parameters
    ----------
    df : pd.DataFrame
        Dataset with sex, weight (kg), height (cm) and age
    reference : pd.DataFrame
        LMS reference (see interpolate_lms)
    sex_col, weight_col, height_col, age_col : str
        Input column names. If age_col is 'age_days' and missing, it is
        derived from 'age' in years.
    output : str
        Name of z-score column (default 'bmi_z')
    digits : int
        Decimal places for the z-score (default 3)

    Returns
    -------
    pd.DataFrame
        Dataset with 'bmi' and the z-score column added
    """
    if age_col not in df.columns and age_col == "age_days" and "age" in df.columns:
        df = add_age_days(df)
    else:
        df = df.copy()

    missing = [c for c in (sex_col, weight_col, height_col, age_col) if c not in df.columns]
    if missing:
        raise MissingColumnsError(missing)

    df["bmi"] = compute_bmi(df[weight_col].astype(float), df[height_col].astype(float))

    lms = interpolate_lms(reference, df[sex_col].values, df[age_col].values)
    z = lms_zscore(df["bmi"].values, lms["l"].values, lms["m"].values, lms["s"].values)

    df[output] = np.round(z, digits)
    return df
