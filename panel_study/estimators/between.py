# panel_study/estimators/between.py
from __future__ import annotations

import pandas as pd
import statsmodels.api as sm

from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData
from .base import PanelModelResult, apply_cov_type, model_spec


def estimate_between(panel: PanelData, config: StudyConfig) -> PanelModelResult:
    """OLS on entity means (one row per entity)."""
    regs = config.model_vars
    means = panel.entity_means([config.outcome] + regs)
    y = means[config.outcome]
    X = sm.add_constant(means[regs], has_constant="add")
    m = sm.OLS(y, X).fit()

    result = PanelModelResult(
        name="Between",
        kind="between",
        params=m.params,
        cov=m.cov_params(),
        nobs=int(m.nobs),
        df_resid=float(m.df_resid),
        resid=pd.Series(m.resid, index=means.index),
        design=X,
        entity=means.index.to_numpy(),
        time=None,
        spec=model_spec(config, regs),
        n_entities=int(len(means)),
        rsquared=float(m.rsquared),
        rsquared_between=float(m.rsquared),
        model=m,
        extra={"obs_per_entity": panel.panel.groupby(config.entity_col).size().mean()},
    )
    return apply_cov_type(result, config)
