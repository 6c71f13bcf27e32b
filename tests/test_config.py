"""Tests for project settings."""

from pathlib import Path

from hbmhg.config import ProjectSettings, get_settings


def test_defaults(monkeypatch):
    for name in ("HBMHG_SEED", "HBMHG_N_SIM", "HBMHG_PROJECT_DIR"):
        monkeypatch.delenv(name, raising=False)
    settings = ProjectSettings()
    assert settings.seed == 123
    assert settings.n_sim == 5000
    assert settings.n_imputations == 20
    assert settings.table_dir == Path(".") / "outputs" / "tables"


def test_environment_override(monkeypatch, tmp_path):
    monkeypatch.setenv("HBMHG_SEED", "7")
    monkeypatch.setenv("HBMHG_PROJECT_DIR", str(tmp_path))
    settings = get_settings()
    assert settings.seed == 7
    assert settings.figure_dir == tmp_path / "outputs" / "figures"


def test_keyword_override(tmp_path):
    settings = get_settings(project_dir=tmp_path, n_sim=100)
    assert settings.n_sim == 100
    settings.ensure_dirs()
    for folder in ("data", "derived", "outputs/tables", "outputs/figures"):
        assert (tmp_path / folder).is_dir()
