# panel_study/estimators/iv.py
from __future__ import annotations

from typing import List, Optional

import numpy as np
import pandas as pd
from linearmodels.iv import IV2SLS

from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData
from .base import PanelModelResult, apply_cov_type, model_spec
from .first_difference import _non_degenerate

_NAMES = {"pooling": "IV 2SLS (pooled)", "within": "IV 2SLS (within)", "fd": "IV 2SLS (first difference)"}


def check_identification(endog: List[str], instruments: List[str]) -> None:
    if not endog:
        raise ValueError("IV estimation needs at least one endogenous regressor (config.endog)")
    if not instruments:
        raise ValueError("IV estimation needs instruments (config.instruments)")
    overlap = sorted(set(endog) & set(instruments))
    if overlap:
        raise ValueError(f"Variables cannot be both endogenous and instruments: {overlap}")
    if len(instruments) < len(endog):
        raise ValueError(
            f"Order condition fails: {len(instruments)} instrument(s) for "
            f"{len(endog)} endogenous regressor(s)"
        )


def estimate_iv(panel: PanelData, config: StudyConfig, model: Optional[str] = None) -> PanelModelResult:
    """Two-stage least squares on pooled, within-transformed or differenced data.

    The within variant demeans every variable by entity and rescales the
    covariance for the ``n`` absorbed means; inference uses z statistics.
    """
    model = model or config.iv_model
    endog = list(config.endog or [])
    instruments = list(config.instruments or [])
    check_identification(endog, instruments)

    exog = [r for r in config.regressors if r not in endog]
    cols = [config.outcome] + exog + endog + instruments
    n_absorbed = 0

    if model == "pooling":
        data = panel.panel[cols].astype(float)
        ok = np.ones(len(data), dtype=bool)
        const = True
    elif model == "within":
        data = panel.within_transform(cols, "individual")
        ok = np.ones(len(data), dtype=bool)
        const = False
        n_absorbed = panel.describe()["n"]
    elif model == "fd":
        data = panel.first_difference(cols)
        ok = data.notna().all(axis=1).to_numpy()
        data = data.loc[ok]
        const = True
    else:
        raise ValueError(f"Unknown IV model '{model}'")

    data = data.reset_index(drop=True)
    if model == "within":
        # scale-relative check; demeaned levels keep rounding noise
        kept = panel.varying_columns(exog, "individual")
    elif model == "fd":
        kept = _non_degenerate(data, exog, const)
    else:
        kept = list(exog)
    dropped = [c for c in exog if c not in kept]
    exog_df = data[kept].copy()
    if const:
        exog_df.insert(0, "const", 1.0)
    exog_arg = exog_df if exog_df.shape[1] else None

    res = IV2SLS(data[config.outcome], exog_arg, data[endog], data[instruments]).fit(
        cov_type="unadjusted", debiased=False
    )
    names = list(res.params.index)

    # First-stage projection of the regressors: the design of the 2SLS sandwich
    X = pd.concat([exog_df, data[endog]], axis=1)[names].to_numpy(float)
    Z = pd.concat([exog_df, data[instruments]], axis=1).to_numpy(float)
    X_hat = Z @ np.linalg.lstsq(Z, X, rcond=None)[0]
    design = pd.DataFrame(X_hat, columns=names)
    resid = pd.Series(data[config.outcome].to_numpy(float) - X @ res.params.to_numpy(float))

    nobs, k = len(data), len(names)
    cov = res.cov.loc[names, names]
    if n_absorbed:
        cov = cov * (nobs / float(nobs - n_absorbed - k))

    first_stage = {}
    diag = res.first_stage.diagnostics
    if "f.stat" in diag.columns:
        first_stage = {str(k_): float(v) for k_, v in diag["f.stat"].items()}

    result = PanelModelResult(
        name=_NAMES[model],
        kind="iv",
        params=res.params.astype(float),
        cov=cov,
        nobs=nobs,
        df_resid=None,
        resid=resid,
        design=design,
        entity=panel.entity[ok],
        time=panel.time[ok],
        spec=model_spec(config, kept + endog, iv_model=model),
        effect="individual" if model == "within" else None,
        n_entities=int(pd.Series(panel.entity[ok]).nunique()),
        rsquared=float(res.rsquared),
        model=res,
        extra={"first_stage_f": first_stage, "iv_model": model, "dropped": dropped},
    )
    return apply_cov_type(result, config)
