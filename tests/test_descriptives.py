"""Tests for descriptive statistics."""

import numpy as np
import pandas as pd
import pytest

from hbmhg.descriptives import (
    KEY_VARIABLES,
    exposure_summary,
    geo_mean,
    hg_summary,
    hg_summary_by_study_year,
    missing_summary,
    population_summary,
    run_descriptives,
)


def test_geo_mean():
    assert geo_mean([1, 10, 100]) == pytest.approx(10.0)
    # Non-positive and missing values are ignored
    assert geo_mean([2, 8, 0, -1, np.nan]) == pytest.approx(4.0)
    assert np.isnan(geo_mean([np.nan, 0]))


def test_hg_summary():
    summary = hg_summary(np.arange(1, 101, dtype=float))
    assert list(summary.index) == ["GM", "P5", "P25", "P50", "P75", "P90", "P95"]
    assert summary["P50"] == pytest.approx(50.5)
    assert summary["GM"] == round(summary["GM"], 3)


def test_hg_summary_empty():
    assert hg_summary([np.nan]).isna().all()


def test_missing_summary():
    df = pd.DataFrame({
        "study": ["PHIME", "PHIME", "CROME"],
        "year": [2008, 2008, 2013],
        "bmi": [15.0, np.nan, np.nan],
    })
    out = missing_summary(df, variables=["bmi"])
    assert out["study"].tolist() == ["CROME", "PHIME"]
    assert out["N_total"].tolist() == [1, 2]
    assert out["missing_bmi"].tolist() == [1, 1]
    assert out["missing_pct_bmi"].tolist() == [100.0, 50.0]


def test_population_summary(pooled_data):
    out = population_summary(pooled_data)
    assert out["N"].sum() == len(pooled_data)
    assert out["Pct_male"].between(0, 100).all()
    assert {"Mean_age", "SD_age", "Median_age", "IQR_age", "Mean_bmi", "SD_bmi"} <= set(out.columns)


def test_hg_summary_by_study_year(pooled_data):
    out = hg_summary_by_study_year(pooled_data)
    assert len(out) == 5
    assert {"N_uhg_ngml", "uhg_ngml_GM", "uhg_creat_P95"} <= set(out.columns)
    assert (out["uhg_ngml_P25"] <= out["uhg_ngml_P75"]).all()


def test_exposure_summary():
    df = pd.DataFrame({
        "study": ["CROME"] * 4,
        "year": [2013] * 4,
        "amalgam_yes_no": [1, 2, 2, np.nan],
        "amalgam_num": [3, np.nan, np.nan, np.nan],
        "fish_new": ["A", "B", "B", np.nan],
    })
    row = exposure_summary(df).iloc[0]
    assert row["Pct_amalgam_yes"] == pytest.approx(33.3)
    assert row["Mean_amalgam_num"] == 3
    assert row["Fish_n_nonmiss"] == 3
    assert row["Fish_B_n"] == 2
    assert row["Fish_B_pct"] == pytest.approx(66.7)
    assert row["Fish_missing_pct"] == pytest.approx(25.0)


def test_run_descriptives(pooled_data, tmp_path, capsys):
    tables = run_descriptives(pooled_data, save_dir=str(tmp_path))
    assert list(tables) == ["missing", "population", "urinary_hg", "exposure"]
    # Studies follow the pooled order, not alphabetical order
    assert list(tables["population"]["study"]) == ["PHIME", "DEMOCOPHES", "CROME", "HBM-II"]
    assert all(f"missing_{v}" in tables["missing"].columns for v in KEY_VARIABLES)
    assert len(list(tmp_path.glob("*.xlsx"))) == 4
    assert "Saved to" in capsys.readouterr().out
