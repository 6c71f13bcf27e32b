"""
Project folders and run settings.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ProjectSettings(BaseSettings):
    """Project configuration loaded from HBMHG_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="HBMHG_", env_file=".env", extra="ignore")

    project_dir: Path = Path(".")

    seed: int = 123
    n_sim: int = 5000
    n_imputations: int = 20

    @property
    def input_dir(self) -> Path:
        return self.project_dir / "data"

    @property
    def derived_dir(self) -> Path:
        return self.project_dir / "derived"

    @property
    def output_dir(self) -> Path:
        return self.project_dir / "outputs"

    @property
    def table_dir(self) -> Path:
        return self.output_dir / "tables"

    @property
    def figure_dir(self) -> Path:
        return self.output_dir / "figures"

    def ensure_dirs(self) -> None:
        """Create the data, derived and output folders if they don't exist."""
        for folder in (self.input_dir, self.derived_dir, self.table_dir, self.figure_dir):
            folder.mkdir(parents=True, exist_ok=True)


def get_settings(**overrides) -> ProjectSettings:
    return ProjectSettings(**overrides)
