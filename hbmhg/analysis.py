"""
Main analysis class for urinary mercury trend analysis.
"""

import os
import pandas as pd
from typing import Dict, Optional
from dataclasses import dataclass

from .config import get_settings
from .exceptions import ValidationError
from .harmonization import harmonize_fish
from .io import read_table, write_table
from .anthropometry import add_bmi_zscores
from .processing import prepare_analysis_dataset
from .models import (
    fit_complete_case, impute_datasets, fit_multiple_imputation,
    compare_year_effect, CCResult, MIResult
)
from .tables import (
    master_table, extract_year, attenuation_table,
    coefficient_sheets, write_workbook
)
from .visualization import plot_overall_trend, plot_town_trends, TOWNS


@dataclass
class HgTrendResult:
    """Container for complete analysis results."""
    analysis_data: pd.DataFrame
    complete_cases: pd.DataFrame
    cc: CCResult
    mi: Optional[MIResult]
    cc_master: pd.DataFrame
    mi_master: Optional[pd.DataFrame]
    cc_year: pd.DataFrame
    mi_year: Optional[pd.DataFrame]
    cc_attenuation: pd.DataFrame
    mi_attenuation: Optional[pd.DataFrame]
    year_comparison: Optional[pd.DataFrame]
    n_subjects: int
    n_complete: int
    n_towns: int


class HgTrendAnalysis:
    """
    Urinary Mercury Trend Analysis

    Estimate the calendar-year trend in children's urinary mercury across
    pooled biomonitoring studies, and how much of it is explained by fish
    consumption and dental amalgams.

    Parameters
    ----------
    data : pd.DataFrame
        Pooled dataset (one row per child) with the columns listed in
        processing.REQUIRED_COLUMNS. 'fish_new' and 'bmi_z' may be filled
        in by the harmonisation and z-score steps instead.
    fish_data : pd.DataFrame, optional
        Raw fish frequency codes (sea_fish, river_fish, frozen_fish,
        canned_fish) to harmonise, with an id column matching data
    lms_reference : pd.DataFrame, optional
        BMI-for-age LMS reference; if given, 'bmi_z' is computed from
        weight, height, sex and age
    id_col : str
        Subject ID column used to merge fish_data (default "id")
    verbose : bool
        Print progress (default True)

    Examples
    --------
    >>> import pandas as pd
    >>> from hbmhg import HgTrendAnalysis
    >>>
    >>> pooled = pd.read_excel("data/pooled_harmonised_dataset.xlsx")
    >>> hg = HgTrendAnalysis(pooled)
    >>> results = hg.run()
    >>>
    >>> print(hg.summary())
    >>> hg.plot()
    """

    def __init__(
        self,
        data: pd.DataFrame,
        fish_data: Optional[pd.DataFrame] = None,
        lms_reference: Optional[pd.DataFrame] = None,
        id_col: str = "id",
        verbose: bool = True
    ):
        self.data = data
        self.fish_data = fish_data
        self.lms_reference = lms_reference
        self.id_col = id_col
        self.verbose = verbose

        self.fish_harmonised: Optional[pd.DataFrame] = None
        self.results: Optional[HgTrendResult] = None

    @classmethod
    def from_files(
        cls,
        data_path: str,
        fish_path: Optional[str] = None,
        lms_path: Optional[str] = None,
        **kwargs
    ) -> "HgTrendAnalysis":
        """
        Build an analysis from .xlsx or .csv files.

        Parameters
        ----------
        data_path : str
            Pooled dataset
        fish_path : str, optional
            Raw fish frequency codes
        lms_path : str, optional
            BMI-for-age LMS reference
        **kwargs
            Passed to HgTrendAnalysis()
        """
        data = read_table(data_path)
        fish_data = read_table(fish_path) if fish_path else None
        lms_reference = read_table(lms_path) if lms_path else None
        return cls(data, fish_data=fish_data, lms_reference=lms_reference, **kwargs)

    def _log(self, message: str):
        if self.verbose:
            print(message)

    def _merge_fish(self, df: pd.DataFrame, n_sim: int, seed: int, n_jobs: int) -> pd.DataFrame:
        ids = self.fish_data[self.id_col]
        duplicated = ids[ids.duplicated()].unique()
        if len(duplicated) > 0:
            raise ValidationError(
                f"Fish data has repeated {self.id_col} values: {', '.join(map(str, duplicated[:10]))}",
                invalid=[(None, self.id_col, v) for v in duplicated]
            )

        self.fish_harmonised = harmonize_fish(self.fish_data, n_sim=n_sim, seed=seed, n_jobs=n_jobs)
        fish = self.fish_harmonised[[self.id_col, "fish_new"]]

        # Harmonised categories fill in subjects that have no category yet
        df = df.merge(fish, on=self.id_col, how="left", suffixes=("", "_harmonised"),
                      validate="many_to_one")
        if "fish_new_harmonised" in df.columns:
            df["fish_new"] = df["fish_new"].astype(object).where(
                df["fish_new"].notna(), df["fish_new_harmonised"]
            )
            df = df.drop(columns="fish_new_harmonised")
        return df

    def run(
        self,
        run_mi: bool = True,
        m: Optional[int] = None,
        seed: Optional[int] = None,
        n_sim: Optional[int] = None,
        n_jobs: int = 1
    ) -> HgTrendResult:
        """
        Run the complete analysis pipeline.

        Parameters
        ----------
        run_mi : bool
            Also fit the multiple-imputation sensitivity models (default True)
        m : int, optional
            Number of imputed datasets (default: settings n_imputations, 20)
        seed : int, optional
            Seed for fish harmonisation and imputation (default: settings seed, 123)
        n_sim : int, optional
            Monte Carlo trials per subject for fish harmonisation
            (default: settings n_sim, 5000)
        n_jobs : int
            Worker threads for fish harmonisation (default 1)

        Returns
        -------
        HgTrendResult
            Complete analysis results
        """
        settings = get_settings()
        m = settings.n_imputations if m is None else m
        seed = settings.seed if seed is None else seed
        n_sim = settings.n_sim if n_sim is None else n_sim

        df = self.data.copy()

        # Step 1: Harmonise fish consumption
        if self.fish_data is not None:
            self._log("Harmonising fish consumption (Monte Carlo)...")
            df = self._merge_fish(df, n_sim=n_sim, seed=seed, n_jobs=n_jobs)

        # Step 2: BMI-for-age z-scores
        if self.lms_reference is not None:
            self._log("Calculating BMI-for-age z-scores...")
            df = add_bmi_zscores(df, self.lms_reference)

        # Step 3: Derive analysis variables
        self._log("Preparing analysis dataset...")
        dat, dat_cc = prepare_analysis_dataset(df, verbose=self.verbose)

        # Step 4: Complete-case models
        self._log("Fitting complete-case mixed models...")
        cc = fit_complete_case(dat_cc)

        # Step 5: Multiple imputation
        mi = None
        if run_mi:
            self._log(f"Imputing {m} datasets...")
            datasets = impute_datasets(dat, m=m, seed=seed)
            self._log("Fitting mixed models on imputed data...")
            mi = fit_multiple_imputation(datasets)

        # Step 6: Tables
        self._log("Building coefficient and attenuation tables...")
        cc_master = master_table(cc.fixed, "cc")
        cc_year = extract_year(cc.fixed, "cc")
        cc_attenuation = attenuation_table(cc_year)

        mi_master = mi_year = mi_attenuation = year_comparison = None
        if mi is not None:
            mi_master = master_table(mi.fixed, "mi")
            mi_year = extract_year(mi.fixed, "mi")
            mi_attenuation = attenuation_table(mi_year)
            year_comparison = compare_year_effect(cc.fixed, mi.fixed)

        self.results = HgTrendResult(
            analysis_data=dat,
            complete_cases=dat_cc,
            cc=cc,
            mi=mi,
            cc_master=cc_master,
            mi_master=mi_master,
            cc_year=cc_year,
            mi_year=mi_year,
            cc_attenuation=cc_attenuation,
            mi_attenuation=mi_attenuation,
            year_comparison=year_comparison,
            n_subjects=len(dat),
            n_complete=len(dat_cc),
            n_towns=dat_cc["town"].nunique()
        )

        self._log(f"\nAnalysis complete!")
        self._log(f"  Subjects: {len(dat)}")
        self._log(f"  Complete cases: {len(dat_cc)}")
        self._log(f"  Models fitted (CC): {len(cc.models)}")

        return self.results

    def _require_results(self) -> HgTrendResult:
        if self.results is None:
            raise ValueError("Must run analysis first. Call .run()")
        return self.results

    def plot(self, save_path: Optional[str] = None, **kwargs):
        """
        Plot the overall urinary Hg trend with exposure percentages.

        Parameters
        ----------
        save_path : str, optional
            Path to save the figure
        **kwargs
            Additional arguments passed to plot_overall_trend()

        Returns
        -------
        matplotlib.figure.Figure
        """
        r = self._require_results()
        return plot_overall_trend(r.complete_cases, save_path=save_path, **kwargs)

    def plot_towns(self, towns=TOWNS, save_dir: Optional[str] = None) -> dict:
        """Town-level trend plots; see plot_town_trends()."""
        r = self._require_results()
        return plot_town_trends(r.complete_cases, towns=towns, save_dir=save_dir)

    def tables(self) -> Dict[str, Dict[str, pd.DataFrame]]:
        """
        Workbook contents keyed by file name.

        Returns
        -------
        dict
            File name to {sheet name: DataFrame}
        """
        r = self._require_results()

        workbooks = {
            "Coefficients_ALL_MODELS_CC.xlsx": coefficient_sheets(r.cc_master, "cc"),
        }
        attenuation = {
            "YearEffect_CC_log+RR": r.cc_year,
            "Attenuation_CC": r.cc_attenuation,
        }
        if r.mi is not None:
            workbooks["Coefficients_ALL_MODELS_MI.xlsx"] = coefficient_sheets(r.mi_master, "mi")
            attenuation["YearEffect_MI_log+RR"] = r.mi_year
            attenuation["Attenuation_MI"] = r.mi_attenuation
            workbooks["Compare_YearEffect_CC_MI.xlsx"] = {"year_c": r.year_comparison}
            workbooks["AIC_BIC.xlsx"] = {"CC": r.cc.aic_bic, "MI": r.mi.aic_bic}
        else:
            workbooks["AIC_BIC.xlsx"] = {"CC": r.cc.aic_bic}
        workbooks["Attenuation_YearEffect_CC_MI.xlsx"] = attenuation

        return workbooks

    def save_fish(self, path: Optional[str] = None) -> str:
        """
        Write the harmonised fish table (codes, category and pA/pB/pC).

        Parameters
        ----------
        path : str, optional
            .xlsx or .csv path (default: hbmii_fish_harmonised.xlsx in the
            derived folder of the project settings)
        """
        if self.fish_harmonised is None:
            raise ValueError("No harmonised fish data. Pass fish_data and call .run()")
        if path is None:
            path = get_settings().derived_dir / "hbmii_fish_harmonised.xlsx"
        path = write_table(self.fish_harmonised, path)
        self._log(f"Saved to {path}")
        return path

    def save_tables(self, table_dir: Optional[str] = None) -> list:
        """
        Write all result workbooks and return their paths.

        Parameters
        ----------
        table_dir : str, optional
            Output folder (default: table_dir of the project settings)
        """
        if table_dir is None:
            table_dir = get_settings().table_dir
        paths = []
        for filename, sheets in self.tables().items():
            paths.append(write_workbook(os.path.join(str(table_dir), filename), sheets))
            self._log(f"Saved to {paths[-1]}")
        return paths

    def summary(self) -> str:
        """
        Generate a text summary of the analysis results.

        Returns
        -------
        str
            Summary text
        """
        if self.results is None:
            return "No results. Run .run() first."

        r = self.results

        def _stars(p):
            return "***" if p < 0.001 else "**" if p < 0.01 else "*" if p < 0.05 else ""

        text = f"""
================================================================================
                     URINARY MERCURY TREND ANALYSIS SUMMARY
================================================================================

DATA SUMMARY
------------
  Subjects analysed: {r.n_subjects}
  Complete cases: {r.n_complete}
  Towns: {r.n_towns}

YEAR EFFECT (Complete Case)
---------------------------
"""
        for _, row in r.cc_year.iterrows():
            text += f"  {row['model']}: RR {row['RR']:.3f} [{row['RR_low']:.3f}, {row['RR_high']:.3f}]"
            text += f" ({row['pct']:+.1f}% per year, p={row['p']:.3e}) {_stars(row['p'])}\n"

        text += "\nATTENUATION OF YEAR EFFECT (Complete Case)\n------------------------------------------\n"
        for _, row in r.cc_attenuation.iterrows():
            value = "NA" if pd.isna(row["attenuation_pct"]) else f"{row['attenuation_pct']:.1f}%"
            text += f"  {row['comparison']}: {value}\n"

        if r.mi_year is not None:
            text += "\nYEAR EFFECT (Multiple Imputation)\n---------------------------------\n"
            for _, row in r.mi_year.iterrows():
                text += f"  {row['model']}: RR {row['RR']:.3f} [{row['RR_low']:.3f}, {row['RR_high']:.3f}]"
                text += f" (p={row['p']:.3e}) {_stars(row['p'])}\n"

        text += "\nMODEL FIT (Complete Case)\n-------------------------\n"
        for _, row in r.cc.aic_bic.iterrows():
            text += f"  {row['model']}: AIC {row['AIC']:.1f}, BIC {row['BIC']:.1f}\n"

        text += "\n================================================================================\n"

        return text
