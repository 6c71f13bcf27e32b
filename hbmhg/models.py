"""
Mixed-effects models of urinary mercury: complete-case and multiple imputation.
"""

import re
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .processing import check_columns


COVARIATES = "bmi_z + ln_ucreat_gL_centered + town_type + age_centered + sex"

MODEL_FORMULAS = {
    # crude calendar-year trend
    "m_00": "ln_uhg_ngml ~ year_c",
    # demographics, creatinine, BMI, town type
    "m_0": f"ln_uhg_ngml ~ year_c + {COVARIATES}",
    # + fish
    "m_1": f"ln_uhg_ngml ~ year_c + fish_new + {COVARIATES}",
    # + amalgam number
    "m_2": f"ln_uhg_ngml ~ year_c + amalgam_num_centered + fish_new + {COVARIATES}",
    # effect modification
    "m3_cat": f"ln_uhg_ngml ~ year_c + amalgam + fish_new * year_c + {COVARIATES}",
    "m3_cat_int": f"ln_uhg_ngml ~ year_c * amalgam + fish_new * year_c + {COVARIATES}",
    "m4_num": f"ln_uhg_ngml ~ year_c + amalgam_num_centered + fish_new * year_c + {COVARIATES}",
    "m5_num": f"ln_uhg_ngml ~ year_c * amalgam_num_centered + fish_new * year_c + {COVARIATES}",
}

SEQUENTIAL_MODELS = ("m_00", "m_0", "m_1", "m_2")

MI_VARIABLES = (
    "ln_uhg_ngml",
    "year_c",
    "fish_new",
    "bmi_z",
    "ln_ucreat_gL_centered",
    "town_type",
    "age_centered",
    "sex",
    "town",
    "study",
    "amalgam_num",
    "amalgam",
)
MI_CATEGORICAL = ("fish_new", "town_type", "sex", "amalgam")
# Predictors only, never imputed
MI_FIXED = ("town", "study")


@dataclass
class CCResult:
    """Container for complete-case model results."""
    fixed: pd.DataFrame
    aic_bic: pd.DataFrame
    models: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MIResult:
    """Container for pooled multiple-imputation model results."""
    fixed: pd.DataFrame
    aic_bic: pd.DataFrame
    n_imputations: int


@dataclass
class PooledEstimate:
    """Rubin's rules pooled estimates for a set of coefficients."""
    estimate: np.ndarray
    std_error: np.ndarray
    df: np.ndarray
    riv: np.ndarray  # Relative increase in variance due to missingness
    fmi: np.ndarray  # Fraction of missing information


def formula_variables(formula: str, columns: Sequence[str]) -> List[str]:
    """Data columns referenced by a model formula."""
    names = re.findall(r"[A-Za-z_][A-Za-z0-9_.]*", formula)
    seen = []
    for name in names:
        if name in columns and name not in seen:
            seen.append(name)
    return seen


def rename_term(term: str) -> str:
    """Convert a patsy column name to the compact 'fish_newB' style."""
    if term == "Intercept":
        return "(Intercept)"
    return re.sub(r"\[T\.([^\]]+)\]", r"\1", term)


def fit_mixed_model(
    formula: str,
    data: pd.DataFrame,
    group_col: str = "town",
    reml: bool = False
):
    """
    Fit a linear mixed model with a random intercept per group.

    Parameters
    ----------
    formula : str
        Fixed-effects formula (patsy syntax)
    data : pd.DataFrame
        Dataset; rows missing any model variable are dropped
    group_col : str
        Grouping column for the random intercept (default 'town')
    reml : bool
        Use REML instead of maximum likelihood (default False, so that
        AIC/BIC are comparable across models)

    Returns
    -------
    statsmodels MixedLMResults
    """
    import statsmodels.formula.api as smf

    used = formula_variables(formula, data.columns)
    data = data.dropna(subset=used + [group_col]).copy()

    # Empty factor levels would give all-zero design columns
    for col in used:
        if isinstance(data[col].dtype, pd.CategoricalDtype):
            data[col] = data[col].cat.remove_unused_categories()

    model = smf.mixedlm(formula, data, groups=data[group_col])
    return model.fit(reml=reml)


def tidy_fixed(result, model_name: str, suffix: str, alpha: float = 0.05) -> pd.DataFrame:
    """
    Fixed effects of a fitted mixed model with Wald confidence intervals.

    Parameters
    ----------
    result : MixedLMResults
        Fitted model
    model_name : str
        Label for the 'model' column
    suffix : str
        Column suffix, e.g. 'cc'
    alpha : float
        1 - confidence level (default 0.05)

    Returns
    -------
    pd.DataFrame
        One row per fixed effect
    """
    fe = result.fe_params
    estimate = np.asarray(fe, dtype=float)
    se = np.asarray(result.bse_fe, dtype=float)
    z_crit = stats.norm.ppf(1 - alpha / 2)

    with np.errstate(divide="ignore", invalid="ignore"):
        p = 2 * stats.norm.sf(np.abs(estimate / se))

    return pd.DataFrame({
        "model": model_name,
        "term": [rename_term(t) for t in fe.index],
        f"estimate_{suffix}": estimate,
        f"se_{suffix}": se,
        f"conf.low_{suffix}": estimate - z_crit * se,
        f"conf.high_{suffix}": estimate + z_crit * se,
        f"p_{suffix}": p
    })


def fit_complete_case(
    dat_cc: pd.DataFrame,
    formulas: Optional[Dict[str, str]] = None,
    group_col: str = "town",
    alpha: float = 0.05
) -> CCResult:
    """
    Fit every model on the complete-case dataset.

    Parameters
    ----------
    dat_cc : pd.DataFrame
        Complete-case dataset
    formulas : dict, optional
        Model name to formula (default MODEL_FORMULAS)
    group_col : str
        Random intercept grouping column
    alpha : float
        1 - confidence level

    Returns
    -------
    CCResult
        Long fixed-effects table (suffix 'cc'), AIC/BIC and fitted models
    """
    if formulas is None:
        formulas = MODEL_FORMULAS

    fixed = []
    fit_stats = []
    models = {}

    for name, formula in formulas.items():
        try:
            result = fit_mixed_model(formula, dat_cc, group_col=group_col)
        except (np.linalg.LinAlgError, ValueError) as e:
            warnings.warn(f"Could not fit model {name}: {e}")
            continue

        models[name] = result
        fixed.append(tidy_fixed(result, name, "cc", alpha=alpha))
        fit_stats.append({"model": name, "AIC": result.aic, "BIC": result.bic})

    if not fixed:
        raise ValueError("None of the complete-case models could be fitted.")

    return CCResult(
        fixed=pd.concat(fixed, ignore_index=True),
        aic_bic=pd.DataFrame(fit_stats),
        models=models
    )


def _encode(data: pd.DataFrame, categorical: Sequence[str]):
    """Replace categorical columns by float codes (NaN for missing)."""
    encoded = pd.DataFrame(index=data.index)
    categories = {}
    for col in data.columns:
        if col in categorical:
            cat = pd.Categorical(data[col])
            categories[col] = cat.categories
            codes = cat.codes.astype(float)
            codes[codes < 0] = np.nan
            encoded[col] = codes
        else:
            encoded[col] = data[col].astype(float)
    return encoded, categories


def _decode(encoded: pd.DataFrame, categories: Dict[str, pd.Index]) -> pd.DataFrame:
    decoded = encoded.copy()
    for col, cats in categories.items():
        codes = np.rint(encoded[col].values).astype(int)
        decoded[col] = pd.Categorical.from_codes(codes, categories=cats)
    return decoded


def impute_datasets(
    dat: pd.DataFrame,
    m: int = 20,
    seed: Optional[int] = 123,
    n_burnin: int = 10,
    n_skip: int = 5,
    k_pmm: int = 20
) -> List[pd.DataFrame]:
    """
    Create multiply imputed datasets by chained equations.

    Every incomplete variable is imputed by predictive mean matching, so
    imputed values are always values observed in the data. Categorical
    variables are imputed on their integer codes and restored afterwards.
    Town and study are used as predictors but never imputed.

    Parameters
    ----------
    dat : pd.DataFrame
        Analysis dataset with MI_VARIABLES
    m : int
        Number of imputed datasets (default 20)
    seed : int, optional
        Random seed (default 123)
    n_burnin : int
        Cycles before the first dataset is kept (default 10)
    n_skip : int
        Cycles between kept datasets (default 5)
    k_pmm : int
        Donor pool size for predictive mean matching (default 20)

    Returns
    -------
    List[pd.DataFrame]
        m completed datasets with 'amalgam_num_centered' recomputed in each
    """
    from statsmodels.imputation import mice

    check_columns(dat, MI_VARIABLES)
    data = dat[list(MI_VARIABLES)].copy()

    incomplete = data[list(MI_FIXED)].isna().any(axis=1)
    if incomplete.any():
        warnings.warn(f"Dropping {int(incomplete.sum())} rows with missing town or study before imputation")
        data = data[~incomplete]
    data = data.reset_index(drop=True)

    categorical = MI_CATEGORICAL + MI_FIXED
    encoded, categories = _encode(data, categorical)

    # MICEData draws from numpy's global random state
    state = np.random.get_state()
    if seed is not None:
        np.random.seed(seed)

    try:
        imp = mice.MICEData(encoded, k_pmm=k_pmm)

        for col in encoded.columns:
            if col in MI_FIXED:
                continue
            predictors = [
                f"C({c})" if c in categorical else c
                for c in encoded.columns if c != col
            ]
            imp.set_imputer(col, formula=" + ".join(predictors), k_pmm=k_pmm)

        # Start categorical variables at their most common level rather
        # than at the mean code
        for col in MI_CATEGORICAL:
            miss = imp.ix_miss[col]
            if len(miss) > 0:
                mode = encoded[col].mode().iloc[0]
                imp.data.iloc[miss, imp.data.columns.get_loc(col)] = mode

        imp.update_all(n_burnin)

        datasets = []
        for _ in range(m):
            imp.update_all(max(n_skip, 1))
            completed = _decode(imp.data, categories)
            completed["amalgam_num_centered"] = (
                completed["amalgam_num"] - completed["amalgam_num"].mean()
            )
            datasets.append(completed)
    finally:
        np.random.set_state(state)

    return datasets


def pool_rubin(
    estimates: np.ndarray,
    variances: np.ndarray,
    dfcom: float = np.inf
) -> PooledEstimate:
    """
    Combine estimates from m imputed datasets by Rubin's rules.

    Parameters
    ----------
    estimates : np.ndarray
        Shape (m, k) coefficient estimates
    variances : np.ndarray
        Shape (m, k) squared standard errors
    dfcom : float
        Complete-data degrees of freedom (default infinite)

    Returns
    -------
    PooledEstimate
        Pooled estimate, standard error, Barnard-Rubin degrees of freedom,
        relative increase in variance and fraction of missing information
    """
    estimates = np.atleast_2d(np.asarray(estimates, dtype=float))
    variances = np.atleast_2d(np.asarray(variances, dtype=float))
    m = estimates.shape[0]
    if m < 2:
        raise ValueError("Pooling needs at least 2 imputed datasets")

    qbar = estimates.mean(axis=0)
    ubar = variances.mean(axis=0)
    b = estimates.var(axis=0, ddof=1)
    t = ubar + (1 + 1 / m) * b

    with np.errstate(divide="ignore", invalid="ignore"):
        riv = (1 + 1 / m) * b / ubar
        lam = (1 + 1 / m) * b / t
        df_old = (m - 1) / lam ** 2
        if np.isinf(dfcom):
            df = df_old
        else:
            df_obs = (dfcom + 1) / (dfcom + 3) * dfcom * (1 - lam)
            df = np.where(lam > 0, df_old * df_obs / (df_old + df_obs), df_obs)
        fmi = (riv + 2 / (df + 3)) / (1 + riv)

    return PooledEstimate(
        estimate=qbar,
        std_error=np.sqrt(t),
        df=np.asarray(df, dtype=float),
        riv=riv,
        fmi=fmi
    )


def fit_multiple_imputation(
    datasets: Sequence[pd.DataFrame],
    formulas: Optional[Dict[str, str]] = None,
    group_col: str = "town",
    alpha: float = 0.05
) -> MIResult:
    """
    Fit every model on each imputed dataset and pool the fixed effects.

    Parameters
    ----------
    datasets : sequence of pd.DataFrame
        Completed datasets from impute_datasets()
    formulas : dict, optional
        Model name to formula (default MODEL_FORMULAS)
    group_col : str
        Random intercept grouping column
    alpha : float
        1 - confidence level

    Returns
    -------
    MIResult
        Pooled fixed effects (suffix 'mi', t-based intervals) and mean
        AIC/BIC across imputations
    """
    if formulas is None:
        formulas = MODEL_FORMULAS
    if len(datasets) < 2:
        raise ValueError("Need at least 2 imputed datasets")

    fixed = []
    fit_stats = []

    for name, formula in formulas.items():
        estimates = []
        variances = []
        aics = []
        bics = []
        dfcom = np.inf

        try:
            for data in datasets:
                result = fit_mixed_model(formula, data, group_col=group_col)
                fe = result.fe_params
                estimates.append(pd.Series(np.asarray(fe), index=fe.index))
                variances.append(pd.Series(np.asarray(result.bse_fe) ** 2, index=fe.index))
                aics.append(result.aic)
                bics.append(result.bic)
                dfcom = min(dfcom, result.nobs - len(fe))
        except (np.linalg.LinAlgError, ValueError) as e:
            warnings.warn(f"Could not fit model {name} on imputed data: {e}")
            continue

        est = pd.DataFrame(estimates)
        var = pd.DataFrame(variances)
        incomplete_terms = est.columns[est.isna().any()]
        if len(incomplete_terms) > 0:
            warnings.warn(
                f"Model {name}: dropping terms not estimable in every imputation: "
                f"{', '.join(incomplete_terms)}"
            )
            est = est.drop(columns=incomplete_terms)
            var = var.drop(columns=incomplete_terms)

        pooled = pool_rubin(est.values, var.values, dfcom=dfcom)
        t_crit = stats.t.ppf(1 - alpha / 2, pooled.df)
        with np.errstate(divide="ignore", invalid="ignore"):
            t_stat = pooled.estimate / pooled.std_error
        p = 2 * stats.t.sf(np.abs(t_stat), pooled.df)

        fixed.append(pd.DataFrame({
            "model": name,
            "term": [rename_term(t) for t in est.columns],
            "estimate_mi": pooled.estimate,
            "se_mi": pooled.std_error,
            "conf.low_mi": pooled.estimate - t_crit * pooled.std_error,
            "conf.high_mi": pooled.estimate + t_crit * pooled.std_error,
            "p_mi": p,
            "df_mi": pooled.df,
            "fmi_mi": pooled.fmi
        }))
        fit_stats.append({"model": name, "AIC_mean": np.mean(aics), "BIC_mean": np.mean(bics)})

    if not fixed:
        raise ValueError("None of the models could be fitted on the imputed data.")

    return MIResult(
        fixed=pd.concat(fixed, ignore_index=True),
        aic_bic=pd.DataFrame(fit_stats),
        n_imputations=len(datasets)
    )


def model_order(models: pd.Series) -> pd.Series:
    """Sort key placing models in MODEL_FORMULAS order."""
    order = {name: i for i, name in enumerate(MODEL_FORMULAS)}
    return models.map(lambda name: order.get(name, len(order)))


def compare_year_effect(
    cc_fixed: pd.DataFrame,
    mi_fixed: pd.DataFrame,
    term: str = "year_c"
) -> pd.DataFrame:
    """
    Side-by-side complete-case and imputed estimates for one term.

    Parameters
    ----------
    cc_fixed : pd.DataFrame
        Fixed effects with suffix 'cc'
    mi_fixed : pd.DataFrame
        Fixed effects with suffix 'mi'
    term : str
        Term to compare (default 'year_c')

    Returns
    -------
    pd.DataFrame
        Outer join on model and term, in model order
    """
    cc_cols = ["model", "term", "estimate_cc", "se_cc", "conf.low_cc", "conf.high_cc", "p_cc"]
    mi_cols = ["model", "term", "estimate_mi", "se_mi", "conf.low_mi", "conf.high_mi", "p_mi"]

    cc_year = cc_fixed.loc[cc_fixed["term"] == term, cc_cols]
    mi_year = mi_fixed.loc[mi_fixed["term"] == term, mi_cols]

    merged = cc_year.merge(mi_year, on=["model", "term"], how="outer")
    return merged.sort_values("model", key=model_order).reset_index(drop=True)
