# panel_study/estimators/first_difference.py
from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd
import statsmodels.api as sm

from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData
from .base import PanelModelResult, apply_cov_type, model_spec


def _non_degenerate(d: pd.DataFrame, regs: List[str], intercept: bool, tol: float = 1e-12) -> List[str]:
    """Drop differenced regressors that are all zero, or constant when an intercept is fit."""
    keep: List[str] = []
    for c in regs:
        col = d[c].to_numpy(float)
        if intercept and np.ptp(col) <= tol:
            continue
        if not intercept and np.max(np.abs(col)) <= tol:
            continue
        keep.append(c)
    return keep


def estimate_first_difference(panel: PanelData, config: StudyConfig) -> PanelModelResult:
    """OLS of dy on dX over consecutive periods within each entity.

    The intercept (on by default, as in ``plm``'s ``fd`` model and
    ``regress D.y D.x``) corresponds to a linear trend in levels.
    Differenced columns keep their level names so tables line up across
    models.
    """
    regs = config.model_vars
    cols = [config.outcome] + regs
    d = panel.first_difference(cols)
    ok = d.notna().all(axis=1)
    d = d.loc[ok]
    if d.empty:
        raise ValueError("No consecutive periods available for first differencing")

    intercept = bool(config.fd_intercept)
    kept = _non_degenerate(d, regs, intercept)
    X = d[kept].astype(float)
    if intercept:
        X = sm.add_constant(X, has_constant="add")
    m = sm.OLS(d[config.outcome].astype(float), X).fit()

    ent = panel.entity[ok.to_numpy()]
    result = PanelModelResult(
        name="First difference",
        kind="fd",
        params=m.params,
        cov=m.cov_params(),
        nobs=int(m.nobs),
        df_resid=float(m.df_resid),
        resid=pd.Series(m.resid, index=d.index),
        design=X,
        entity=ent,
        time=panel.time[ok.to_numpy()],
        spec=model_spec(config, kept, intercept=intercept),
        n_entities=int(pd.Series(ent).nunique()),
        rsquared=float(m.rsquared),
        model=m,
        extra={
            "dropped": [r for r in regs if r not in kept],
            "rows_lost": int((~ok).sum()),
        },
    )
    return apply_cov_type(result, config)
