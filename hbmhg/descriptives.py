"""
Summary statistics and missing-data reporting for the pooled dataset.
"""

import os
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .processing import STUDY_ORDER, restrict_age, check_columns
from .tables import write_workbook


KEY_VARIABLES = (
    "uhg_ngml",
    "uhg_creat",
    "amalgam_yes_no",
    "fish_new",
    "age",
    "bmi",
    "sex",
)

HG_PERCENTILES = (5, 25, 50, 75, 90, 95)


def geo_mean(x) -> float:
    """Geometric mean of the positive, non-missing values."""
    x = pd.Series(x, dtype=float)
    x = x[(x > 0) & x.notna()]
    if len(x) == 0:
        return np.nan
    return float(np.exp(np.log(x).mean()))


def hg_summary(x) -> pd.Series:
    """
    Geometric mean and percentiles of a concentration.

    Parameters
    ----------
    x : array-like
        Concentrations; missing values are ignored

    Returns
    -------
    pd.Series
        GM, P5, P25, P50, P75, P90, P95 rounded to 3 decimals
    """
    x = pd.Series(x, dtype=float).dropna()
    values = {"GM": geo_mean(x)}
    for pct in HG_PERCENTILES:
        values[f"P{pct}"] = x.quantile(pct / 100) if len(x) > 0 else np.nan
    return pd.Series(values).round(3)


def missing_summary(
    df: pd.DataFrame,
    variables: Sequence[str] = KEY_VARIABLES,
    by: Sequence[str] = ("study", "year")
) -> pd.DataFrame:
    """
    Count and percentage of missing values per group.

    Parameters
    ----------
    df : pd.DataFrame
        Dataset
    variables : sequence of str
        Variables to check
    by : sequence of str
        Grouping columns (default study and year)

    Returns
    -------
    pd.DataFrame
        N_total, missing_<var> and missing_pct_<var> per group
    """
    check_columns(df, list(variables) + list(by))

    rows = []
    for keys, group in df.groupby(list(by), observed=True, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        row = dict(zip(by, keys))
        row["N_total"] = len(group)
        for var in variables:
            row[f"missing_{var}"] = int(group[var].isna().sum())
        for var in variables:
            row[f"missing_pct_{var}"] = round(100 * group[var].isna().mean(), 1)
        rows.append(row)

    return pd.DataFrame(rows)


def population_summary(df: pd.DataFrame, by: str = "study") -> pd.DataFrame:
    """Age, sex and BMI characteristics per study."""
    check_columns(df, [by, "age", "sex", "bmi"])

    rows = []
    for key, group in df.groupby(by, observed=True, sort=True):
        age = group["age"].astype(float)
        bmi = group["bmi"].astype(float)
        sex = group["sex"].dropna().astype(float)
        rows.append({
            by: key,
            "N": len(group),
            "Mean_age": round(age.mean(), 1),
            "SD_age": round(age.std(), 1),
            "Median_age": round(age.median(), 1),
            "IQR_age": round(age.quantile(0.75) - age.quantile(0.25), 1),
            "Pct_male": round(100 * (sex == 1).mean(), 1) if len(sex) else np.nan,
            "Mean_bmi": round(bmi.mean(), 1),
            "SD_bmi": round(bmi.std(), 2),
        })

    return pd.DataFrame(rows)


def hg_summary_by_study_year(
    df: pd.DataFrame,
    outcomes: Sequence[str] = ("uhg_ngml", "uhg_creat"),
    by: Sequence[str] = ("study", "year")
) -> pd.DataFrame:
    """
    Urinary mercury distribution per study and year.

    Returns
    -------
    pd.DataFrame
        N_<outcome> plus <outcome>_GM, <outcome>_P5, ... per group
    """
    check_columns(df, list(outcomes) + list(by))

    rows = []
    for keys, group in df.groupby(list(by), observed=True, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        row = dict(zip(by, keys))
        for outcome in outcomes:
            row[f"N_{outcome}"] = int(group[outcome].notna().sum())
        for outcome in outcomes:
            for stat, value in hg_summary(group[outcome]).items():
                row[f"{outcome}_{stat}"] = value
        rows.append(row)

    return pd.DataFrame(rows)


def exposure_summary(df: pd.DataFrame, by: Sequence[str] = ("study", "year")) -> pd.DataFrame:
    """
    Amalgam and fish consumption exposure per study and year.

    Fish percentages are among subjects with a known category.
    """
    check_columns(df, ["amalgam_yes_no", "amalgam_num", "fish_new"] + list(by))

    rows = []
    for keys, group in df.groupby(list(by), observed=True, sort=True):
        keys = keys if isinstance(keys, tuple) else (keys,)
        row = dict(zip(by, keys))

        amalgam = group["amalgam_yes_no"].dropna()
        carriers = group.loc[group["amalgam_yes_no"] == 1, "amalgam_num"].astype(float)
        row["Pct_amalgam_yes"] = round(100 * (amalgam == 1).mean(), 1) if len(amalgam) else np.nan
        row["Mean_amalgam_num"] = round(carriers.mean(), 2)
        row["SD_amalgam_num"] = round(carriers.std(), 2)

        fish = group["fish_new"].astype(object)
        known = fish.dropna()
        row["Fish_n_nonmiss"] = len(known)
        for level in ("A", "B", "C"):
            row[f"Fish_{level}_n"] = int((known == level).sum())
        for level in ("A", "B", "C"):
            row[f"Fish_{level}_pct"] = round(100 * (known == level).mean(), 1) if len(known) else np.nan
        row["Fish_missing_n"] = int(fish.isna().sum())
        row["Fish_missing_pct"] = round(100 * fish.isna().mean(), 1)

        rows.append(row)

    return pd.DataFrame(rows)


def run_descriptives(
    df: pd.DataFrame,
    save_dir: Optional[str] = None,
    verbose: bool = True
) -> Dict[str, pd.DataFrame]:
    """
    Build all descriptive tables.

    Parameters
    ----------
    df : pd.DataFrame
        Analysis dataset
    save_dir : str, optional
        Folder for one workbook per table
    verbose : bool
        Print progress

    Returns
    -------
    dict
        Tables keyed 'missing', 'population', 'urinary_hg', 'exposure'
    """
    data = restrict_age(df)
    data["study"] = pd.Categorical(data["study"], categories=list(STUDY_ORDER))

    if verbose:
        print("Summarising missing data...")
    tables = {"missing": missing_summary(data)}

    if verbose:
        print("Summarising population characteristics...")
    tables["population"] = population_summary(data)

    if verbose:
        print("Summarising urinary mercury...")
    tables["urinary_hg"] = hg_summary_by_study_year(data)

    if verbose:
        print("Summarising amalgam and fish exposure...")
    tables["exposure"] = exposure_summary(data)

    if save_dir:
        filenames = {
            "missing": "missing_summary_by_study_year.xlsx",
            "population": "population_characteristics_by_study.xlsx",
            "urinary_hg": "urinary_hg_summary_by_study_year.xlsx",
            "exposure": "exposure_covariates_by_study_year.xlsx",
        }
        for key, filename in filenames.items():
            path = write_workbook(os.path.join(save_dir, filename), {key: tables[key]})
            if verbose:
                print(f"Saved to {path}")

    return tables
