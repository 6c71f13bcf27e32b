"""Tests for visualization functions."""

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from hbmhg.visualization import (
    AMALGAM_GROUP,
    exposure_percentages,
    plot_overall_trend,
    plot_town_trend,
    plot_town_trends,
    summarize_by_year,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_summarize_by_year():
    df = pd.DataFrame({"year": [2008] * 4 + [2011], "uhg_ngml": [1.0, 2.0, 3.0, 4.0, np.nan]})
    out = summarize_by_year(df)
    assert out["year"].tolist() == [2008.0]
    assert out.loc[0, "n"] == 4
    assert out.loc[0, "median"] == pytest.approx(2.5)
    assert out.loc[0, "Q1"] == pytest.approx(1.75)
    assert out.loc[0, "Q3"] == pytest.approx(3.25)


def test_exposure_percentages(pooled_data):
    pct = exposure_percentages(pooled_data)
    assert list(pct.columns) == ["year", "group", "value"]
    fish = pct[pct["group"] != AMALGAM_GROUP]
    np.testing.assert_allclose(fish.groupby("year")["value"].sum(), 100.0)
    assert pct["value"].between(0, 100).all()


def test_exposure_percentages_empty():
    df = pd.DataFrame({"year": [2008], "amalgam_yes_no": [np.nan], "fish_new": [np.nan]})
    assert len(exposure_percentages(df)) == 0


def test_plot_overall_trend(analysis_data, tmp_path):
    _, dat_cc = analysis_data
    path = tmp_path / "trend.svg"
    fig = plot_overall_trend(dat_cc, save_path=str(path))
    assert isinstance(fig, plt.Figure)
    assert path.exists()


def test_plot_overall_trend_no_data(analysis_data):
    _, dat_cc = analysis_data
    with pytest.raises(ValueError):
        plot_overall_trend(dat_cc.iloc[:0])


def test_plot_town_trend(analysis_data):
    _, dat_cc = analysis_data
    fig = plot_town_trend(dat_cc, "Idrija")
    assert fig.axes[0].get_title() == "Idrija"


def test_plot_town_trend_unknown_town(analysis_data):
    _, dat_cc = analysis_data
    assert plot_town_trend(dat_cc, "Atlantis") is None


def test_plot_town_trends(analysis_data, tmp_path):
    _, dat_cc = analysis_data
    figures = plot_town_trends(dat_cc, towns=["Idrija", "Atlantis"], save_dir=str(tmp_path))
    assert set(figures) == {("Idrija", "uhg_ngml"), ("Idrija", "uhg_creat")}
    assert (tmp_path / "uHg_ngml_trend_percentages_Idrija.svg").exists()
