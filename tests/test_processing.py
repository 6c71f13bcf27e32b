"""Tests for data processing functions."""

import numpy as np
import pandas as pd
import pytest

from hbmhg.exceptions import MissingColumnsError
from hbmhg.processing import (
    CC_VARIABLES,
    STUDY_ORDER,
    check_columns,
    complete_cases,
    derive_variables,
    prepare_analysis_dataset,
    restrict_age,
)


def test_check_columns():
    df = pd.DataFrame({"a": [1]})
    check_columns(df, ["a"])
    with pytest.raises(MissingColumnsError, match="b, c"):
        check_columns(df, ["a", "b", "c"])


def test_restrict_age_only_touches_one_study():
    df = pd.DataFrame({
        "study": ["HBM-II", "HBM-II", "HBM-II", "HBM-II", "PHIME"],
        "age": [5.9, 6.0, 9.0, 9.1, 5.0],
    })
    out = restrict_age(df)
    assert out["age"].tolist() == [6.0, 9.0, 5.0]


class TestDeriveVariables:

    @pytest.fixture
    def derived(self, pooled_data):
        return derive_variables(pooled_data)

    def test_logs(self, derived):
        row = derived.dropna(subset=["uhg_creat"]).iloc[0]
        assert row["ln_uhg_ngml"] == pytest.approx(np.log(row["uhg_ngml"]))
        assert row["ucreat_gL"] == pytest.approx(row["uhg_ngml"] / row["uhg_creat"])

    def test_nonpositive_log_is_nan(self, pooled_data):
        df = pooled_data.copy()
        df.loc[0, "uhg_ngml"] = 0.0
        assert np.isnan(derive_variables(df).loc[0, "ln_uhg_ngml"])

    def test_factor_levels(self, derived):
        assert list(derived["study"].cat.categories) == list(STUDY_ORDER)
        assert list(derived["fish_new"].cat.categories) == ["A", "B", "C"]
        assert list(derived["amalgam"].cat.categories) == ["No", "Yes"]
        assert list(derived["town_type"].cat.categories) == [
            "urban", "rural", "potentially contaminated"
        ]

    def test_amalgam_recoding(self, derived):
        no = derived["amalgam"] == "No"
        assert (derived.loc[no, "amalgam_num"] == 0).all()
        assert derived.loc[derived["amalgam"].isna(), "amalgam_num"].isna().all()
        assert (derived.loc[derived["amalgam_yes_no"] == 1, "amalgam"] == "Yes").all()

    def test_centred_variables(self, derived):
        for col in ("age_centered", "year_c", "ln_ucreat_gL_centered", "amalgam_num_centered"):
            assert derived[col].mean() == pytest.approx(0.0, abs=1e-9)

    def test_input_untouched(self, pooled_data):
        before = pooled_data.copy()
        derive_variables(pooled_data)
        pd.testing.assert_frame_equal(pooled_data, before)


def test_complete_cases(analysis_data):
    dat, dat_cc = analysis_data
    assert len(dat_cc) < len(dat)
    assert not dat_cc[list(CC_VARIABLES)].isna().any().any()


def test_complete_cases_missing_column():
    with pytest.raises(MissingColumnsError):
        complete_cases(pd.DataFrame({"year_c": [1.0]}))


def test_prepare_analysis_dataset(pooled_data, capsys):
    dat, dat_cc = prepare_analysis_dataset(pooled_data)
    hbm = dat[dat["study"] == "HBM-II"]
    assert hbm["age"].between(6, 9).all()
    assert len(dat) < len(pooled_data)
    assert f"Total N = {len(dat)} | Complete cases N = {len(dat_cc)}" in capsys.readouterr().out


def test_prepare_requires_columns(pooled_data):
    with pytest.raises(MissingColumnsError, match="bmi_z"):
        prepare_analysis_dataset(pooled_data.drop(columns="bmi_z"))


def test_prepare_without_complete_cases(pooled_data):
    df = pooled_data.copy()
    df["bmi_z"] = np.nan
    with pytest.raises(ValueError, match="No complete cases"):
        prepare_analysis_dataset(df, verbose=False)
