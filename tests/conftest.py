"""Test configuration and fixtures."""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


STUDY_YEARS = {
    "PHIME": [2008],
    "DEMOCOPHES": [2011],
    "CROME": [2013],
    "HBM-II": [2018, 2019],
}
TOWNS = {
    "Idrija": "potentially contaminated",
    "Ljubljana": "urban",
    "Kranj": "urban",
    "Murska Sobota": "rural",
    "Koper": "urban",
    "Kocevje": "rural",
}


def make_pooled_dataset(n_per_year: int = 60, seed: int = 42, missing_rate: float = 0.05) -> pd.DataFrame:
    """Synthetic pooled dataset with a declining urinary Hg trend."""
    rng = np.random.default_rng(seed)
    town_names = list(TOWNS)
    town_effect = dict(zip(town_names, rng.normal(0, 0.3, len(town_names))))

    rows = []
    subject_id = 0
    for study, years in STUDY_YEARS.items():
        for year in years:
            for _ in range(n_per_year):
                town = town_names[rng.integers(len(town_names))]
                has_amalgam = rng.random() < 0.4 - 0.03 * (year - 2008)
                n_amalgam = int(rng.integers(1, 6)) if has_amalgam else 0
                fish = rng.choice(["A", "B", "C"], p=[0.3, 0.5, 0.2])
                creat = rng.lognormal(0, 0.3)
                ln_hg = (
                    -0.5
                    - 0.05 * (year - 2012)
                    + 0.08 * n_amalgam
                    + {"A": 0.0, "B": 0.15, "C": 0.3}[fish]
                    + town_effect[town]
                    + rng.normal(0, 0.4)
                )
                uhg_ngml = float(np.exp(ln_hg))
                age = rng.uniform(5, 10) if study == "HBM-II" else rng.uniform(6, 9)
                rows.append({
                    "id": subject_id,
                    "study": study,
                    "year": year,
                    "age": round(age, 1),
                    "sex": int(rng.integers(1, 3)),
                    "town_id": town,
                    "town_type": TOWNS[town],
                    "uhg_ngml": uhg_ngml,
                    "uhg_creat": uhg_ngml / creat,
                    "amalgam_yes_no": 1 if has_amalgam else 2,
                    "amalgam_num": n_amalgam if has_amalgam else np.nan,
                    "fish_new": fish,
                    "bmi": float(rng.normal(16.5, 2)),
                    "bmi_z": float(rng.normal(0.2, 1)),
                })
                subject_id += 1

    df = pd.DataFrame(rows)

    # Scatter some missing values through the covariates
    for col in ("fish_new", "bmi_z", "amalgam_yes_no", "uhg_creat"):
        mask = rng.random(len(df)) < missing_rate
        df.loc[mask, col] = np.nan

    return df


@pytest.fixture
def pooled_data():
    """Pooled dataset for four studies and six towns."""
    return make_pooled_dataset()


@pytest.fixture
def analysis_data(pooled_data):
    """Prepared analysis dataset and its complete cases."""
    from hbmhg.processing import prepare_analysis_dataset
    return prepare_analysis_dataset(pooled_data, verbose=False)


@pytest.fixture
def fish_codes():
    """Raw fish frequency codes with one missing answer."""
    return pd.DataFrame({
        "id": [0, 1, 2, 3, 4],
        "sea_fish": [1, 8, 3, 2, 4],
        "river_fish": [1, 8, 2, np.nan, 1],
        "frozen_fish": [1, 8, 1, 1, 2],
        "canned_fish": [1, 8, 1, 1, 3],
        "school": ["a", "b", "c", "d", "e"],
    })


@pytest.fixture
def lms_reference():
    """Small BMI-for-age LMS table (age in days) for both sexes."""
    ages = np.array([1800.0, 2500.0, 3300.0, 4000.0])
    rows = []
    for sex, l, m0 in ((1, -1.6, 15.3), (2, -1.4, 15.2)):
        for i, age in enumerate(ages):
            rows.append({"sex": sex, "age": age, "l": l, "m": m0 + 0.3 * i, "s": 0.08 + 0.005 * i})
    return pd.DataFrame(rows)


@pytest.fixture(scope="session")
def prepared():
    """Analysis dataset shared by the model tests."""
    from hbmhg.processing import prepare_analysis_dataset
    return prepare_analysis_dataset(make_pooled_dataset(), verbose=False)


@pytest.fixture(scope="session")
def cc_result(prepared):
    """Complete-case fits of every model."""
    from hbmhg.models import fit_complete_case
    return fit_complete_case(prepared[1])


@pytest.fixture(scope="session")
def imputed(prepared):
    """Three quickly imputed datasets."""
    from hbmhg.models import impute_datasets
    return impute_datasets(prepared[0], m=3, seed=1, n_burnin=2, n_skip=1)


@pytest.fixture(scope="session")
def mi_result(imputed):
    """Pooled fits of the sequential models."""
    from hbmhg.models import MODEL_FORMULAS, SEQUENTIAL_MODELS, fit_multiple_imputation
    formulas = {name: MODEL_FORMULAS[name] for name in SEQUENTIAL_MODELS}
    return fit_multiple_imputation(imputed, formulas=formulas)
