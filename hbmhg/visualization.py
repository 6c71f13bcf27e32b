"""
Visualization functions for urinary mercury trends.
"""

import os
import pandas as pd
import numpy as np
from typing import Optional, Sequence, Tuple
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches


FISH_GROUPS = {"A": "Fish: low", "B": "Fish: medium", "C": "Fish: high"}
AMALGAM_GROUP = "Amalgam: yes"
GROUP_ORDER = (AMALGAM_GROUP, "Fish: low", "Fish: medium", "Fish: high")

GROUP_COLORS = {
    "Amalgam: yes": "darkolivegreen",
    "Fish: low": "bisque",
    "Fish: medium": "tan",
    "Fish: high": "burlywood",
}

TOWNS = ("Idrija", "Ljubljana")


def summarize_by_year(df: pd.DataFrame, outcome_col: str = "uhg_ngml") -> pd.DataFrame:
    """
    Quartiles of an outcome per calendar year.

    Returns
    -------
    pd.DataFrame
        Columns year, n, Q1, median, Q3
    """
    data = df.dropna(subset=[outcome_col, "year"])
    data = data.assign(year=data["year"].astype(float))

    summary = data.groupby("year")[outcome_col].agg(
        n="size",
        Q1=lambda x: x.quantile(0.25),
        median="median",
        Q3=lambda x: x.quantile(0.75)
    ).reset_index()

    return summary


def exposure_percentages(df: pd.DataFrame) -> pd.DataFrame:
    """
    Percentage of children with amalgams and in each fish category per year.

    Fish percentages are among children with a known category, so the
    three fish groups add up to 100 within a year.

    Returns
    -------
    pd.DataFrame
        Long format with columns year, group, value
    """
    parts = []

    amalgam = df.dropna(subset=["amalgam_yes_no", "year"])
    if len(amalgam) > 0:
        amalgam_pct = (
            amalgam.assign(year=amalgam["year"].astype(float))
            .groupby("year")["amalgam_yes_no"]
            .apply(lambda x: 100 * (x == 1).mean())
            .reset_index(name="value")
        )
        amalgam_pct["group"] = AMALGAM_GROUP
        parts.append(amalgam_pct)

    fish = df.dropna(subset=["fish_new", "year"])
    if len(fish) > 0:
        fish = fish.assign(
            year=fish["year"].astype(float),
            group=fish["fish_new"].astype(object).map(FISH_GROUPS)
        ).dropna(subset=["group"])
        fish_pct = (
            fish.groupby("year")["group"]
            .value_counts(normalize=True)
            .mul(100)
            .reset_index(name="value")
        )
        parts.append(fish_pct)

    if not parts:
        return pd.DataFrame(columns=["year", "group", "value"])

    out = pd.concat(parts, ignore_index=True)[["year", "group", "value"]]
    out["group"] = pd.Categorical(out["group"], categories=list(GROUP_ORDER))
    return out.sort_values(["year", "group"]).reset_index(drop=True)


def _draw_exposure_bars(ax, pct: pd.DataFrame, x_of_year, y_max: float, width: float, offset: float):
    """Stacked fish bars left of each year, amalgam bar right of it."""
    pct = pct.assign(value_scaled=pct["value"] / 100 * y_max)

    for year, group in pct.groupby("year"):
        x = x_of_year(year)
        bottom = 0.0
        for label in ("Fish: low", "Fish: medium", "Fish: high"):
            rows = group[group["group"] == label]
            if len(rows) == 0:
                continue
            height = rows["value_scaled"].iloc[0]
            ax.bar(x - offset, height, width=width, bottom=bottom,
                   color=GROUP_COLORS[label], edgecolor="white", linewidth=0.5, zorder=1)
            bottom += height

        rows = group[group["group"] == AMALGAM_GROUP]
        if len(rows) > 0:
            ax.bar(x + offset, rows["value_scaled"].iloc[0], width=width,
                   color=GROUP_COLORS[AMALGAM_GROUP], edgecolor="white", linewidth=0.5, zorder=1)


def _draw_hg_summary(ax, summary: pd.DataFrame, x: np.ndarray, with_line: bool):
    ax.errorbar(
        x, summary["median"],
        yerr=[summary["median"] - summary["Q1"], summary["Q3"] - summary["median"]],
        fmt="none", ecolor="firebrick", elinewidth=2, capsize=4, zorder=3
    )
    ax.scatter(x, summary["median"], color="darkred", s=50, zorder=4)
    if with_line:
        ax.plot(x, summary["median"], color="firebrick", linewidth=1, zorder=3)


def _add_percent_axis(ax, y_max: float):
    """Secondary axis showing the bar heights as percentages."""
    secax = ax.secondary_yaxis(
        "right",
        functions=(lambda y: y / y_max * 100, lambda p: p / 100 * y_max)
    )
    secax.set_ylabel("Percentage of children (%)")
    secax.set_yticks([0, 25, 50, 75, 100])
    return secax


def _legend_handles():
    return [mpatches.Patch(color=GROUP_COLORS[g], label=g) for g in GROUP_ORDER]


def plot_overall_trend(
    df: pd.DataFrame,
    outcome_col: str = "uhg_ngml",
    uhg_max: float = 2.0,
    ylabel: str = "Urinary Hg (ng mL$^{-1}$)",
    figsize: Tuple[float, float] = (7.2, 3.8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Urinary mercury by year with amalgam and fish consumption percentages.

    Parameters
    ----------
    df : pd.DataFrame
        Complete-case analysis dataset
    outcome_col : str
        Outcome column (default 'uhg_ngml')
    uhg_max : float
        Top of the Hg axis; 100% on the secondary axis maps to this value
    ylabel : str
        Left axis label
    figsize : tuple
        Figure size in inches
    save_path : str, optional
        Path to save the figure

    Returns
    -------
    plt.Figure
        Matplotlib figure object
    """
    summary = summarize_by_year(df, outcome_col)
    if len(summary) == 0:
        raise ValueError(f"No non-missing {outcome_col} values to plot.")
    pct = exposure_percentages(df)

    fig, ax = plt.subplots(figsize=figsize)

    _draw_exposure_bars(ax, pct, lambda year: year, uhg_max, width=0.4, offset=0.2)

    years = summary["year"].values
    _draw_hg_summary(ax, summary, years, with_line=False)

    # Quadratic trend through the yearly medians
    if len(summary) >= 3:
        coefs = np.polyfit(years, summary["median"].values, 2)
        grid = np.linspace(years.min(), years.max(), 200)
        ax.plot(grid, np.polyval(coefs, grid), color="firebrick", linewidth=1.5, zorder=3)

    ax.set_xticks(years)
    ax.set_xticklabels([f"{y:.0f}" for y in years], rotation=45, ha="right")
    ax.set_xlim(years.min() - 0.8, years.max() + 0.8)
    ax.set_ylim(0, uhg_max + 0.1)
    ax.set_yticks(np.arange(0, uhg_max + 1e-9, 0.5))
    ax.set_xlabel("Year")
    ax.set_ylabel(ylabel)
    _add_percent_axis(ax, uhg_max)

    ax.legend(handles=_legend_handles(), loc="lower center", bbox_to_anchor=(0.5, 1.0),
              ncol=4, frameon=False, fontsize=9)
    ax.grid(True, axis="y", alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, bbox_inches="tight")

    return fig


def plot_town_trend(
    df: pd.DataFrame,
    town_name: str,
    outcome_col: str = "uhg_ngml",
    ylabel: str = "Urinary Hg (ng mL$^{-1}$)",
    headroom: float = 0.3,
    town_col: str = "town_id",
    figsize: Tuple[float, float] = (5, 3.8),
    save_path: Optional[str] = None
) -> Optional[plt.Figure]:
    """
    Urinary mercury trend for one town on an evenly spaced year axis.

    Parameters
    ----------
    df : pd.DataFrame
        Complete-case analysis dataset
    town_name : str
        Town to plot
    outcome_col : str
        Outcome column, e.g. 'uhg_ngml' or 'uhg_creat'
    ylabel : str
        Left axis label
    headroom : float
        Space added above the highest Q3
    town_col : str
        Column holding the town name
    figsize : tuple
        Figure size in inches
    save_path : str, optional
        Path to save the figure

    Returns
    -------
    plt.Figure or None
        None when the town has no observations of the outcome
    """
    data_town = df[df[town_col] == town_name]
    summary = summarize_by_year(data_town, outcome_col)
    if len(summary) == 0:
        return None

    y_max = summary["Q3"].max() + headroom

    # Sampling years are irregular; plot them at evenly spaced positions
    years = list(summary["year"])
    position = {year: i + 1 for i, year in enumerate(years)}
    pct = exposure_percentages(data_town)
    pct = pct[pct["year"].isin(years)]

    fig, ax = plt.subplots(figsize=figsize)

    _draw_exposure_bars(ax, pct, lambda year: position[year], y_max, width=0.3, offset=0.15)
    _draw_hg_summary(ax, summary, np.array([position[y] for y in years]), with_line=True)

    ax.set_xticks(list(position.values()))
    ax.set_xticklabels([f"{y:.0f}" for y in years], rotation=45, ha="right")
    ax.set_xlim(0.5, len(years) + 0.5)
    ax.set_ylim(0, y_max)
    ax.set_xlabel("Sampling year")
    ax.set_ylabel(ylabel)
    ax.set_title(town_name)
    _add_percent_axis(ax, y_max)

    ax.legend(handles=_legend_handles(), loc="lower center", bbox_to_anchor=(0.5, 1.08),
              ncol=2, frameon=False, fontsize=8)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, bbox_inches="tight")

    return fig


def plot_town_trends(
    df: pd.DataFrame,
    towns: Sequence[str] = TOWNS,
    save_dir: Optional[str] = None
) -> dict:
    """
    Town plots for urinary Hg in ng/mL and per gram creatinine.

    Returns
    -------
    dict
        Figures keyed by (town, outcome); towns without data are skipped
    """
    outcomes = {
        "uhg_ngml": ("Urinary Hg (ng mL$^{-1}$)", "uHg_ngml_trend_percentages_{}.svg"),
        "uhg_creat": ("Urinary Hg (µg g$^{-1}$ creatinine)", "uHg_creat_trend_percentages_{}.svg"),
    }

    figures = {}
    for town in towns:
        for outcome, (ylabel, pattern) in outcomes.items():
            save_path = os.path.join(save_dir, pattern.format(town)) if save_dir else None
            fig = plot_town_trend(df, town, outcome_col=outcome, ylabel=ylabel, save_path=save_path)
            if fig is not None:
                figures[(town, outcome)] = fig

    return figures
