"""Tests for BMI-for-age z-scores."""

import numpy as np
import pandas as pd
import pytest

from hbmhg.anthropometry import (
    DAYS_PER_MONTH,
    _lms_value,
    add_age_days,
    add_bmi_zscores,
    compute_bmi,
    interpolate_lms,
    lms_zscore,
)
from hbmhg.exceptions import MissingColumnsError


def test_add_age_days():
    df = add_age_days(pd.DataFrame({"age": [1.0, 7.5]}))
    assert df["age_months"].tolist() == [12.0, 90.0]
    assert df["age_days"].iloc[0] == pytest.approx(365.25)
    assert df["age_days"].iloc[1] == pytest.approx(90 * DAYS_PER_MONTH)


def test_compute_bmi():
    assert compute_bmi(25.0, 125.0) == pytest.approx(16.0)


class TestLmsZscore:

    def test_median_is_zero(self):
        z = lms_zscore([15.3], [-1.6], [15.3], [0.08])
        assert z[0] == pytest.approx(0.0)

    @pytest.mark.parametrize("target", [-2.5, -1.0, 0.5, 2.0, 3.0])
    def test_inverts_lms_curve(self, target):
        l, m, s = np.array([-1.6]), np.array([15.3]), np.array([0.08])
        y = _lms_value(target, l, m, s)
        assert lms_zscore(y, l, m, s)[0] == pytest.approx(target)

    def test_zero_power_uses_log(self):
        y = 16.0 * np.exp(0.1)
        assert lms_zscore([y], [0.0], [16.0], [0.1])[0] == pytest.approx(1.0)

    def test_adjusted_above_three(self):
        l, m, s = np.array([-1.6]), np.array([15.3]), np.array([0.08])
        sd2 = _lms_value(2, l, m, s)
        sd3 = _lms_value(3, l, m, s)
        y = sd3 + 0.5 * (sd3 - sd2)
        assert lms_zscore(y, l, m, s)[0] == pytest.approx(3.5)

    def test_adjusted_below_minus_three(self):
        l, m, s = np.array([-1.6]), np.array([15.3]), np.array([0.08])
        sd2 = _lms_value(-2, l, m, s)
        sd3 = _lms_value(-3, l, m, s)
        y = sd3 - (sd2 - sd3)
        assert lms_zscore(y, l, m, s)[0] == pytest.approx(-4.0)

    def test_missing_input(self):
        z = lms_zscore([np.nan, 15.3], [-1.6, np.nan], [15.3, 15.3], [0.08, 0.08])
        assert np.isnan(z).all()


class TestInterpolateLms:

    def test_interpolates_within_sex(self, lms_reference):
        lms = interpolate_lms(lms_reference, [1, 2], [2150.0, 1800.0])
        assert lms.loc[0, "m"] == pytest.approx(15.45)
        assert lms.loc[0, "l"] == pytest.approx(-1.6)
        assert lms.loc[1, "m"] == pytest.approx(15.2)
        assert lms.loc[1, "l"] == pytest.approx(-1.4)

    def test_outside_reference_is_nan(self, lms_reference):
        lms = interpolate_lms(lms_reference, [1, 1, 3], [1000.0, 5000.0, 2500.0])
        assert lms.isna().all().all()

    def test_missing_reference_column(self, lms_reference):
        with pytest.raises(MissingColumnsError, match="LMS reference"):
            interpolate_lms(lms_reference.drop(columns="s"), [1], [2000.0])


class TestAddBmiZscores:

    def test_adds_columns(self, lms_reference):
        df = pd.DataFrame({
            "sex": [1, 2, 1],
            "age": [7.0, 8.0, 2.0],
            "weight": [24.0, 26.0, 12.0],
            "height": [122.0, 128.0, 88.0],
        })
        out = add_bmi_zscores(df, lms_reference)
        assert {"age_days", "bmi", "bmi_z"} <= set(out.columns)
        assert out["bmi"].iloc[0] == pytest.approx(24.0 / 1.22 ** 2)
        assert np.isfinite(out["bmi_z"].iloc[:2]).all()
        # Age 2 is below the reference range
        assert np.isnan(out["bmi_z"].iloc[2])
        assert "bmi_z" not in df.columns

    def test_rounding(self, lms_reference):
        df = pd.DataFrame({"sex": [1], "age_days": [2500.0], "weight": [25.0], "height": [125.0]})
        z = add_bmi_zscores(df, lms_reference)["bmi_z"].iloc[0]
        assert z == round(z, 3)

    def test_missing_columns(self, lms_reference):
        df = pd.DataFrame({"sex": [1], "age": [7.0], "weight": [24.0]})
        with pytest.raises(MissingColumnsError) as excinfo:
            add_bmi_zscores(df, lms_reference)
        assert excinfo.value.missing == ["height"]
