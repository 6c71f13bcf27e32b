"""
Reading and writing tables.
"""

import os
from typing import Union

import pandas as pd

PathLike = Union[str, os.PathLike]


def read_table(path: PathLike, sheet: Union[int, str] = 0) -> pd.DataFrame:
    """Read an Excel sheet (.xlsx/.xls) or a CSV file."""
    suffix = os.path.splitext(str(path))[1].lower()
    if suffix in (".xlsx", ".xls"):
        return pd.read_excel(path, sheet_name=sheet)
    return pd.read_csv(path)


def write_table(df: pd.DataFrame, path: PathLike) -> str:
    """Write a table as Excel or CSV depending on the file extension."""
    folder = os.path.dirname(str(path))
    if folder:
        os.makedirs(folder, exist_ok=True)

    suffix = os.path.splitext(str(path))[1].lower()
    if suffix == ".xlsx":
        df.to_excel(path, index=False, engine="openpyxl")
    else:
        df.to_csv(path, index=False)
    return str(path)
