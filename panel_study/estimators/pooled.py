# panel_study/estimators/pooled.py
from __future__ import annotations

import pandas as pd
import statsmodels.api as sm

from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData
from .base import PanelModelResult, apply_cov_type, model_spec


def estimate_pooled(panel: PanelData, config: StudyConfig) -> PanelModelResult:
    """Pooled OLS over all entity-period rows, ignoring the panel structure."""
    df = panel.panel
    regs = config.model_vars
    y = df[config.outcome].astype(float)
    X = sm.add_constant(df[regs].astype(float), has_constant="add")

    m = sm.OLS(y, X).fit()

    result = PanelModelResult(
        name="Pooled OLS",
        kind="pooling",
        params=m.params,
        cov=m.cov_params(),
        nobs=int(m.nobs),
        df_resid=float(m.df_resid),
        resid=pd.Series(m.resid, index=df.index),
        design=X,
        entity=panel.entity,
        time=panel.time,
        spec=model_spec(config, regs),
        n_entities=int(df[config.entity_col].nunique()),
        rsquared=float(m.rsquared),
        rsquared_overall=float(m.rsquared),
        model=m,
    )
    return apply_cov_type(result, config)
