"""
Data processing functions for the pooled biomonitoring dataset.
"""

import pandas as pd
import numpy as np
from typing import Iterable, Sequence, Tuple

from .exceptions import MissingColumnsError


STUDY_ORDER = ("PHIME", "DEMOCOPHES", "CROME", "HBM-II")
TOWN_TYPES = ("urban", "rural", "potentially contaminated")
FISH_LEVELS = ("A", "B", "C")

REQUIRED_COLUMNS = (
    "study", "age", "sex", "year",
    "town_id", "town_type",
    "uhg_ngml", "uhg_creat",
    "amalgam_yes_no", "amalgam_num",
    "fish_new",
    "bmi_z",
)

CC_VARIABLES = (
    "ln_uhg_ngml",            # outcome
    "year_c",                 # time
    "fish_new",               # harmonised fish consumption
    "bmi_z",
    "ln_ucreat_gL_centered",
    "town_type",
    "age_centered",
    "sex",
    "town",
    "amalgam",
    "amalgam_num_centered",
)


def check_columns(df: pd.DataFrame, required: Iterable[str], where: str = "data") -> None:
    """Raise MissingColumnsError if any required column is absent."""
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise MissingColumnsError(missing, where=where)


def restrict_age(
    df: pd.DataFrame,
    study: str = "HBM-II",
    min_age: float = 6,
    max_age: float = 9
) -> pd.DataFrame:
    """
    Drop subjects of one study outside an age window.

    Parameters
    ----------
    df : pd.DataFrame
        Pooled dataset
    study : str
        Study to restrict (default 'HBM-II')
    min_age : float
        Minimum age in years, inclusive (default 6)
    max_age : float
        Maximum age in years, inclusive (default 9)

    Returns
    -------
    pd.DataFrame
        Filtered dataset; other studies are untouched
    """
    out_of_range = (df["study"] == study) & ((df["age"] < min_age) | (df["age"] > max_age))
    return df[~out_of_range].copy()


def _safe_log(values: pd.Series) -> pd.Series:
    values = values.astype(float)
    return np.log(values.where(values > 0))


def _center(values: pd.Series) -> pd.Series:
    return values - values.mean(skipna=True)


def derive_variables(df: pd.DataFrame) -> pd.DataFrame:
    """
    Derive the modelling variables.

    Parameters
    ----------
    df : pd.DataFrame
        Pooled dataset with REQUIRED_COLUMNS

    Returns
    -------
    pd.DataFrame
        Dataset with log transforms, categorical factors and centred
        covariates added
    """
    df = df.copy()

    df["ucreat_gL"] = df["uhg_ngml"] / df["uhg_creat"]
    df["ln_uhg_ngml"] = _safe_log(df["uhg_ngml"])
    df["ln_ucreat_gL"] = _safe_log(df["ucreat_gL"])

    # amalgam_yes_no is coded 1 = yes, 2 = no
    df["amalgam"] = pd.Categorical(
        df["amalgam_yes_no"].map({2: "No", 1: "Yes"}),
        categories=["No", "Yes"]
    )
    df["fish_new"] = pd.Categorical(df["fish_new"], categories=list(FISH_LEVELS))
    df["sex"] = pd.Categorical(df["sex"])
    df["study"] = pd.Categorical(df["study"], categories=list(STUDY_ORDER))
    df["town"] = pd.Categorical(df["town_id"])
    df["town_type"] = pd.Categorical(df["town_type"], categories=list(TOWN_TYPES))

    # Children without amalgams have none to count; unknown status stays unknown
    amalgam_num = df["amalgam_num"].astype(float)
    amalgam_num[df["amalgam"] == "No"] = 0.0
    amalgam_num[df["amalgam"].isna()] = np.nan
    df["amalgam_num"] = amalgam_num

    df["age_centered"] = _center(df["age"].astype(float))
    df["ln_ucreat_gL_centered"] = _center(df["ln_ucreat_gL"])
    df["year_c"] = _center(df["year"].astype(float))
    df["year_f"] = pd.Categorical(df["year"])
    df["amalgam_num_centered"] = _center(df["amalgam_num"])

    return df


def complete_cases(df: pd.DataFrame, variables: Sequence[str] = CC_VARIABLES) -> pd.DataFrame:
    """Keep rows with no missing value in any of the given variables."""
    check_columns(df, variables)
    return df.dropna(subset=list(variables)).copy()


def prepare_analysis_dataset(
    df: pd.DataFrame,
    verbose: bool = True
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Build the analysis dataset and its complete-case subset.

    Parameters
    ----------
    df : pd.DataFrame
        Pooled, harmonised dataset
    verbose : bool
        Print dataset sizes

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame]
        (analysis dataset, complete-case dataset)
    """
    check_columns(df, REQUIRED_COLUMNS)

    dat = restrict_age(df)
    dat = derive_variables(dat)
    dat_cc = complete_cases(dat)

    if len(dat_cc) == 0:
        raise ValueError("No complete cases left after preparation. Check your input data.")

    if verbose:
        print(f"Total N = {len(dat)} | Complete cases N = {len(dat_cc)}")

    return dat, dat_cc
