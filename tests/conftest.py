import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from panel_study.helpers.config import StudyConfig
from panel_study.helpers.preparation import PanelData


def _simulate(n: int = 80, T: int = 6, seed: int = 12345, corr: float = 1.0) -> pd.DataFrame:
    """y = 1 + 0.5 x1 - 0.3 x2 + 0.2 z + a_i + e; x1 loads on a_i with weight ``corr``."""
    rng = np.random.default_rng(seed)
    ids = np.repeat(np.arange(1, n + 1), T)
    years = np.tile(np.arange(2000, 2000 + T), n)
    a = np.repeat(rng.normal(0.0, 1.5, n), T)
    z = np.repeat(rng.integers(0, 2, n).astype(float), T)
    x1 = corr * a + rng.normal(0.0, 1.0, n * T) + 0.1 * (years - 2000)
    x2 = rng.normal(0.0, 1.0, n * T)
    e = rng.normal(0.0, 1.0, n * T)
    y = 1.0 + 0.5 * x1 - 0.3 * x2 + 0.2 * z + a + e
    return pd.DataFrame({"id": ids, "year": years, "y": y, "x1": x1, "x2": x2, "z": z})


@pytest.fixture()
def balanced_df() -> pd.DataFrame:
    return _simulate()


@pytest.fixture()
def unbalanced_df() -> pd.DataFrame:
    df = _simulate(seed=777)
    rng = np.random.default_rng(99)
    drop = rng.random(len(df)) < 0.2
    # every entity keeps its first two periods
    drop &= df["year"] >= 2002
    return df.loc[~drop].reset_index(drop=True)


@pytest.fixture()
def iv_df() -> pd.DataFrame:
    """w is endogenous (shares v with the error); q1, q2 are valid instruments."""
    rng = np.random.default_rng(2024)
    n, T = 200, 5
    ids = np.repeat(np.arange(1, n + 1), T)
    years = np.tile(np.arange(1, T + 1), n)
    a = np.repeat(rng.normal(0.0, 1.0, n), T)
    x1 = rng.normal(0.0, 1.0, n * T) + 0.5 * a
    q1 = rng.normal(0.0, 1.0, n * T)
    q2 = rng.normal(0.0, 1.0, n * T)
    v = rng.normal(0.0, 1.0, n * T)
    w = 0.8 * q1 + 0.5 * q2 + 0.3 * x1 + v
    u = 0.8 * v + rng.normal(0.0, 0.6, n * T)
    y = 1.0 + 1.5 * w + 0.5 * x1 + a + u
    return pd.DataFrame({"id": ids, "year": years, "y": y, "x1": x1, "w": w, "q1": q1, "q2": q2})


def make_config(df: pd.DataFrame, **kwargs) -> StudyConfig:
    opts = dict(
        df=df,
        entity_col="id",
        time_col="year",
        outcome="y",
        regressors=["x1", "x2", "z"],
        verbose=False,
    )
    opts.update(kwargs)
    return StudyConfig(**opts)


@pytest.fixture()
def balanced_cfg(balanced_df) -> StudyConfig:
    return make_config(balanced_df)


@pytest.fixture()
def balanced_panel(balanced_cfg) -> PanelData:
    return PanelData(balanced_cfg)


@pytest.fixture()
def unbalanced_cfg(unbalanced_df) -> StudyConfig:
    return make_config(unbalanced_df)


@pytest.fixture()
def unbalanced_panel(unbalanced_cfg) -> PanelData:
    return PanelData(unbalanced_cfg)


@pytest.fixture()
def config_factory():
    return make_config
