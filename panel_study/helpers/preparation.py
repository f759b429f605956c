# panel_study/helpers/preparation.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

from pathlib import Path

import numpy as np
import pandas as pd

from .config import StudyConfig
from .download import fetch_dataset, is_remote

ArrayLike = Union[pd.Series, np.ndarray, Sequence[Any]]


# ----------------------------
# Loading
# ----------------------------
def load_table(source: Union[str, Path], cache_dir: Optional[str] = None) -> pd.DataFrame:
    """Read a Stata, CSV or parquet table from a local path or an http(s) URL.

    Stata value labels are not converted, so labelled variables arrive as
    their numeric codes (what ``xtreg``/``plm`` see).
    """
    src = str(source)
    path = fetch_dataset(src, cache_dir) if is_remote(src) else Path(src)
    suffix = path.suffix.lower()
    if suffix == ".dta":
        return pd.read_stata(path, convert_categoricals=False)
    if suffix == ".csv":
        return pd.read_csv(path)
    if suffix in (".parquet", ".pq"):
        return pd.read_parquet(path)
    raise ValueError(f"Unsupported table format '{suffix}' for {src}")


# ----------------------------
# Panel transformations
# ----------------------------
def demean(
    data: pd.DataFrame,
    entity: ArrayLike,
    time: Optional[ArrayLike] = None,
    effect: str = "individual",
    *,
    balanced: bool = False,
    tol: float = 1e-10,
    max_iter: int = 10_000,
) -> pd.DataFrame:
    """Within transformation of ``data`` by entity, time or both.

    Two-way demeaning uses ``x - x_i - x_t + x`` on balanced panels and
    alternating projections otherwise.
    """
    x = data.astype(float)
    ent = np.asarray(entity)
    if effect == "individual":
        return x - x.groupby(ent).transform("mean")
    if time is None:
        raise ValueError(f"effect='{effect}' needs time labels")
    tim = np.asarray(time)
    if effect == "time":
        return x - x.groupby(tim).transform("mean")
    if effect != "twoways":
        raise ValueError(f"Unknown effect '{effect}'")

    if balanced:
        return (
            x
            - x.groupby(ent).transform("mean")
            - x.groupby(tim).transform("mean")
            + x.mean()
        )

    out = x - x.groupby(ent).transform("mean")
    for _ in range(max_iter):
        out = out - out.groupby(tim).transform("mean")
        ent_means = out.groupby(ent).transform("mean")
        out = out - ent_means
        if float(np.nanmax(np.abs(ent_means.to_numpy()), initial=0.0)) < tol:
            break
    else:
        raise RuntimeError(f"two-way demeaning did not converge in {max_iter} iterations")
    return out


# ----------------------------
# Panel builder
# ----------------------------
class PanelData:
    """
    Entity x time panel with:
      - optional derived columns (Stata ``gen``-style expressions),
      - listwise deletion over the model variables,
      - validated index (non-missing, unique (entity, time) pairs),
      - time-aware lags / first differences (gaps yield missing values),
      - within and between transformations.
    """

    def __init__(self, config: StudyConfig) -> None:
        self.config = config.copy()
        self.entity_col = self.config.entity_col
        self.time_col = self.config.time_col
        self.raw: Optional[pd.DataFrame] = None
        self.panel: Optional[pd.DataFrame] = None
        self.info: Dict[str, Any] = {}
        self._prepare()

    # ---------- build
    def _prepare(self) -> None:
        cfg = self.config
        if cfg.df is not None:
            df = cfg.df.copy()
        elif cfg.source:
            df = load_table(cfg.source, cfg.cache_dir)
        else:
            raise ValueError("StudyConfig needs either df or source")
        self.raw = df

        for name, expr in (cfg.derived or {}).items():
            df[name] = df.eval(expr)

        e, t = self.entity_col, self.time_col
        missing_cols = [c for c in [e, t] + cfg.sample_vars if c not in df.columns]
        if missing_cols:
            raise ValueError(f"Columns not found in data: {missing_cols}")

        n_idx_na = int(df[[e, t]].isna().any(axis=1).sum())
        if n_idx_na:
            raise ValueError(f"{n_idx_na} rows have a missing {e}/{t} index value")

        dup = df.duplicated([e, t], keep=False)
        if dup.any():
            pairs = df.loc[dup, [e, t]].drop_duplicates().head(5).to_records(index=False).tolist()
            raise ValueError(f"(entity, time) pairs are not unique, e.g. {pairs}")

        n_before = len(df)
        keep_cols = [e, t] + [c for c in cfg.sample_vars]
        panel = df.loc[:, list(dict.fromkeys(keep_cols))].copy()
        bad = {}
        for c in cfg.sample_vars:
            was_na = panel[c].isna()
            panel[c] = pd.to_numeric(panel[c], errors="coerce")
            n_bad = int((panel[c].isna() & ~was_na).sum())
            if n_bad:
                bad[c] = n_bad
        if bad:
            raise ValueError(f"Non-numeric values in model variables (column: rows): {bad}")
        panel = panel.dropna(subset=cfg.sample_vars)
        if panel.empty:
            raise ValueError("No complete observations left after listwise deletion")

        self.panel = panel.sort_values([e, t]).reset_index(drop=True)
        self.info["rows_raw"] = int(n_before)
        self.info["rows_dropped"] = int(n_before - len(self.panel))
        self.info.update(self.describe())

    # ---------- index views
    @property
    def entity(self) -> np.ndarray:
        return self.panel[self.entity_col].to_numpy()

    @property
    def time(self) -> np.ndarray:
        return self.panel[self.time_col].to_numpy()

    @property
    def is_balanced(self) -> bool:
        return bool(self.info.get("balanced", self.describe()["balanced"]))

    def panel_frame(self) -> pd.DataFrame:
        """Frame indexed by (entity, time), as ``xtset`` / ``pdata.frame`` declare it."""
        return self.panel.set_index([self.entity_col, self.time_col])

    def describe(self) -> Dict[str, Any]:
        """``pdim``/``xtdescribe`` style dimensions of the estimation sample."""
        ti = self.panel.groupby(self.entity_col).size()
        n_periods = int(self.panel[self.time_col].nunique())
        return {
            "n": int(ti.size),
            "T": n_periods,
            "N": int(len(self.panel)),
            "Ti_min": int(ti.min()),
            "Ti_mean": float(ti.mean()),
            "Ti_max": int(ti.max()),
            "balanced": bool((ti == n_periods).all()),
        }

    def time_positions(self) -> pd.Series:
        """Position of each row's period on the panel-wide sorted time grid."""
        grid = np.sort(self.panel[self.time_col].unique())
        lookup = {v: i for i, v in enumerate(grid)}
        return self.panel[self.time_col].map(lookup).astype(int)

    # ---------- time-series operators
    def lag(self, cols: Sequence[str], k: int = 1) -> pd.DataFrame:
        """Lag by ``k`` periods; missing when the lagged period is absent."""
        grp = self.panel[self.entity_col]
        pos = self.time_positions()
        out = self.panel[list(cols)].groupby(grp).shift(k)
        step = pos - pos.groupby(grp).shift(k)
        out.loc[step != k, :] = np.nan
        return out

    def first_difference(self, cols: Sequence[str]) -> pd.DataFrame:
        """x_it - x_i,t-1 for consecutive periods; first period and gaps are missing."""
        lagged = self.lag(cols, 1)
        return self.panel[list(cols)].astype(float) - lagged

    def within_transform(self, cols: Sequence[str], effect: str = "individual") -> pd.DataFrame:
        return demean(
            self.panel[list(cols)],
            self.entity,
            self.time,
            effect,
            balanced=self.is_balanced,
        )

    def entity_means(self, cols: Sequence[str]) -> pd.DataFrame:
        return self.panel.groupby(self.entity_col)[list(cols)].mean()

    def varying_columns(self, cols: Sequence[str], effect: str = "individual", tol: float = 1e-10) -> List[str]:
        """Columns with non-zero variation left after the within transformation."""
        if not cols:
            return []
        dm = self.within_transform(cols, effect)
        scale = self.panel[list(cols)].abs().max().replace(0, 1.0)
        spread = dm.abs().max() / scale
        return [c for c in cols if float(spread[c]) > tol]
