"""
Coefficient and attenuation tables.
"""

import os
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .models import SEQUENTIAL_MODELS, model_order


ATTENUATION_STEPS = (
    ("m_00", "m_0", "m_00 → m_0 (basic adjustment)"),
    ("m_0", "m_1", "m_0 → m_1 (+ fish)"),
    ("m_1", "m_2", "m_1 → m_2 (+ amalgam number)"),
    ("m_00", "m_2", "m_00 → m_2 (overall)"),
)


def fmt_rr_se(rr: float, se: float, digits: int = 3) -> Optional[str]:
    """Format a rate ratio and its standard error as 'RR (SE)'."""
    if pd.isna(rr):
        return None
    return f"{rr:.{digits}f} ({se:.{digits}f})"


def fmt_p(p: float) -> Optional[str]:
    """Format a p-value, with '<0.001' for small values."""
    if pd.isna(p):
        return None
    if p < 0.001:
        return "<0.001"
    return f"{p:.3f}"


def master_table(fixed: pd.DataFrame, suffix: str) -> pd.DataFrame:
    """
    Add rate-ratio columns to a long fixed-effects table.

    Parameters
    ----------
    fixed : pd.DataFrame
        Fixed effects with columns estimate_<suffix>, se_<suffix>,
        conf.low_<suffix>, conf.high_<suffix>, p_<suffix>
    suffix : str
        'cc' or 'mi'

    Returns
    -------
    pd.DataFrame
        Table with RR = exp(beta), CI on the RR scale, delta-method SE_RR
        and formatted 'RR_SE' and 'p_form' columns, ordered by model and term
    """
    est, se = f"estimate_{suffix}", f"se_{suffix}"
    lo, hi, p = f"conf.low_{suffix}", f"conf.high_{suffix}", f"p_{suffix}"

    df = fixed.copy()
    df["RR"] = np.exp(df[est])
    df["RR_low"] = np.exp(df[lo])
    df["RR_high"] = np.exp(df[hi])
    # Delta method: se(exp(b)) = exp(b) * se(b)
    df["SE_RR"] = df["RR"] * df[se]
    df["RR_SE"] = [fmt_rr_se(rr, s) for rr, s in zip(df["RR"], df["SE_RR"])]
    df["p_form"] = df[p].map(fmt_p)

    df = df[[
        "model", "term",
        est, se, lo, hi, p,
        "RR", "SE_RR", "RR_low", "RR_high",
        "RR_SE", "p_form"
    ]]

    df = df.assign(_order=model_order(df["model"]))
    df = df.sort_values(["_order", "term"], kind="mergesort").drop(columns="_order")
    return df.reset_index(drop=True)


def wide_tables(master: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Pivot a master table to one column per model.

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame]
        (formatted RR (SE) table, formatted p-value table with 'p_' prefix)
    """
    models = list(dict.fromkeys(master["model"]))

    rr_wide = master.pivot(index="term", columns="model", values="RR_SE")
    rr_wide = rr_wide.reindex(columns=models).reset_index()
    rr_wide.columns.name = None

    p_wide = master.pivot(index="term", columns="model", values="p_form")
    p_wide = p_wide.reindex(columns=models)
    p_wide.columns = [f"p_{m}" for m in models]
    p_wide = p_wide.reset_index()

    return rr_wide, p_wide


def extract_year(
    fixed: pd.DataFrame,
    suffix: str,
    models: Sequence[str] = SEQUENTIAL_MODELS,
    term: str = "year_c"
) -> pd.DataFrame:
    """
    Year-effect rows of the sequential models, with the rate-ratio scale.

    Parameters
    ----------
    fixed : pd.DataFrame
        Fixed effects table with the given suffix
    suffix : str
        'cc' or 'mi'
    models : sequence of str
        Models to keep, in output order
    term : str
        Term to extract (default 'year_c')

    Returns
    -------
    pd.DataFrame
        Columns model, beta, se, lo, hi, p, RR, RR_low, RR_high, pct
    """
    rows = fixed[(fixed["model"].isin(models)) & (fixed["term"] == term)]
    out = pd.DataFrame({
        "model": rows["model"].values,
        "beta": rows[f"estimate_{suffix}"].values,
        "se": rows[f"se_{suffix}"].values,
        "lo": rows[f"conf.low_{suffix}"].values,
        "hi": rows[f"conf.high_{suffix}"].values,
        "p": rows[f"p_{suffix}"].values
    })

    out["RR"] = np.exp(out["beta"])
    out["RR_low"] = np.exp(out["lo"])
    out["RR_high"] = np.exp(out["hi"])
    out["pct"] = (out["RR"] - 1) * 100

    order = {m: i for i, m in enumerate(models)}
    out = out.sort_values("model", key=lambda s: s.map(order))
    return out.reset_index(drop=True)


def attenuate(beta0: float, beta1: float) -> float:
    """
    Percentage reduction in the magnitude of a coefficient.

    attenuation = 100 * (1 - |beta1| / |beta0|); NaN when either value is
    missing or beta0 is practically zero.
    """
    if pd.isna(beta0) or pd.isna(beta1):
        return np.nan
    if abs(beta0) < 1e-12:
        return np.nan
    return 100 * (1 - abs(beta1) / abs(beta0))


def attenuation_table(year: pd.DataFrame) -> pd.DataFrame:
    """
    Attenuation of the year effect across the sequential models.

    Parameters
    ----------
    year : pd.DataFrame
        Output of extract_year()

    Returns
    -------
    pd.DataFrame
        Columns 'comparison' and 'attenuation_pct'
    """
    betas = dict(zip(year["model"], year["beta"]))

    rows = []
    for base, adjusted, label in ATTENUATION_STEPS:
        rows.append({
            "comparison": label,
            "attenuation_pct": attenuate(betas.get(base, np.nan), betas.get(adjusted, np.nan))
        })

    return pd.DataFrame(rows)


def coefficient_sheets(master: pd.DataFrame, suffix: str) -> Dict[str, pd.DataFrame]:
    """Long, RR(SE) and p sheets for one coefficient workbook."""
    rr_wide, p_wide = wide_tables(master)
    label = suffix.upper()
    return {
        f"Long_{label}": master,
        f"RR(SE)_{label}": rr_wide,
        f"p_{label}": p_wide
    }


def write_workbook(path: str, sheets: Dict[str, pd.DataFrame]) -> str:
    """
    Write DataFrames to an Excel workbook, one sheet each.

    Parameters
    ----------
    path : str
        Output .xlsx path; parent folders are created
    sheets : dict
        Sheet name to DataFrame. Names are cut to Excel's 31 characters.

    Returns
    -------
    str
        The path written
    """
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)

    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name[:31], index=False)

    return path
