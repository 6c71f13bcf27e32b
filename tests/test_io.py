"""Tests for table reading and writing."""

import pandas as pd

from hbmhg.io import read_table, write_table


def test_csv_round_trip(tmp_path):
    df = pd.DataFrame({"id": [1, 2], "fish_new": ["A", "C"]})
    path = write_table(df, tmp_path / "sub" / "fish.csv")
    pd.testing.assert_frame_equal(read_table(path), df)


def test_excel_round_trip(tmp_path):
    df = pd.DataFrame({"id": [1, 2], "pA": [0.25, 1.0]})
    path = write_table(df, tmp_path / "fish.xlsx")
    pd.testing.assert_frame_equal(read_table(path), df)
