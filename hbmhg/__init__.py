"""
hbmhg - Urinary Mercury Trends in Human Biomonitoring

Harmonise fish consumption across biomonitoring studies and analyse the
calendar-year trend in children's urinary mercury with mixed models.
"""

from .exceptions import HbmError, ValidationError, MissingColumnsError
from .harmonization import (
    IntervalTable,
    SubjectRecord,
    HarmonizationResult,
    DEFAULT_INTERVALS,
    FISH_VARS,
    harmonize,
    harmonize_records,
    harmonize_fish,
    validate_frame,
)
from .anthropometry import add_bmi_zscores, lms_zscore
from .processing import prepare_analysis_dataset, restrict_age, derive_variables, complete_cases
from .models import (
    MODEL_FORMULAS,
    fit_complete_case,
    impute_datasets,
    fit_multiple_imputation,
    pool_rubin,
    compare_year_effect,
)
from .tables import master_table, wide_tables, extract_year, attenuate, attenuation_table, write_workbook
from .descriptives import (
    geo_mean,
    hg_summary,
    missing_summary,
    population_summary,
    hg_summary_by_study_year,
    exposure_summary,
    run_descriptives,
)
from .visualization import plot_overall_trend, plot_town_trend, plot_town_trends
from .io import read_table, write_table
from .analysis import HgTrendAnalysis

__version__ = "0.1.0"
__all__ = [
    "HbmError",
    "ValidationError",
    "MissingColumnsError",
    # Fish harmonisation
    "IntervalTable",
    "SubjectRecord",
    "HarmonizationResult",
    "DEFAULT_INTERVALS",
    "FISH_VARS",
    "harmonize",
    "harmonize_records",
    "harmonize_fish",
    "validate_frame",
    # Covariates
    "add_bmi_zscores",
    "lms_zscore",
    "prepare_analysis_dataset",
    "restrict_age",
    "derive_variables",
    "complete_cases",
    # Models and tables
    "MODEL_FORMULAS",
    "fit_complete_case",
    "impute_datasets",
    "fit_multiple_imputation",
    "pool_rubin",
    "compare_year_effect",
    "master_table",
    "wide_tables",
    "extract_year",
    "attenuate",
    "attenuation_table",
    "write_workbook",
    # Descriptives
    "geo_mean",
    "hg_summary",
    "missing_summary",
    "population_summary",
    "hg_summary_by_study_year",
    "exposure_summary",
    "run_descriptives",
    # Figures
    "plot_overall_trend",
    "plot_town_trend",
    "plot_town_trends",
    # Files
    "read_table",
    "write_table",
    "HgTrendAnalysis",
]
