# panel_study/estimators/within.py
from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from linearmodels.panel import PanelOLS

from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData
from .base import PanelModelResult, apply_cov_type, model_spec

_LABELS = {"individual": "entity", "time": "time", "twoways": "two-way"}


def _absorbed_count(panel: PanelData, effect: str) -> int:
    dims = panel.describe()
    if effect == "individual":
        return dims["n"] - 1
    if effect == "time":
        return dims["T"] - 1
    return dims["n"] + dims["T"] - 2


def estimate_within(panel: PanelData, config: StudyConfig, effect: str = "individual") -> PanelModelResult:
    """Fixed-effects (within) estimator with a Stata-style constant.

    Regressors without variation after the transformation (time-invariant
    ones for entity effects) are dropped, as ``xtreg, fe`` omits them.
    """
    regs = config.model_vars
    varying = panel.varying_columns(regs, effect)
    dropped = [r for r in regs if r not in varying]

    pf = panel.panel_frame()
    y = pf[config.outcome].astype(float)
    X = pf[varying].astype(float)
    X.insert(0, "const", 1.0)

    mod = PanelOLS(
        y,
        X,
        entity_effects=effect in ("individual", "twoways"),
        time_effects=effect in ("time", "twoways"),
        drop_absorbed=True,
    )
    res = mod.fit(cov_type="unadjusted")
    slopes = [c for c in res.params.index if c != "const"]

    # Demeaned data for residuals; the sandwich design adds the sample means back
    dm = panel.within_transform([config.outcome] + slopes, effect)
    y_dm = dm[config.outcome].to_numpy()
    X_dm = dm[slopes].to_numpy()
    b = res.params[slopes].to_numpy(float)
    resid = pd.Series(y_dm - X_dm @ b, index=panel.panel.index)

    design = dm[slopes] + panel.panel[slopes].mean()
    design.insert(0, "const", 1.0)
    design = design[list(res.params.index)]

    nobs = int(res.nobs)
    df_resid = float(nobs - len(res.params) - _absorbed_count(panel, effect))
    s2 = float(resid @ resid) / df_resid
    Xd = design.to_numpy(float)
    cov = pd.DataFrame(
        s2 * np.linalg.pinv(Xd.T @ Xd), index=res.params.index, columns=res.params.index
    )

    result = PanelModelResult(
        name=f"Within ({_LABELS[effect]} FE)",
        kind="within",
        params=res.params.astype(float),
        cov=cov,
        nobs=nobs,
        df_resid=df_resid,
        resid=resid,
        design=design,
        entity=panel.entity,
        time=panel.time,
        spec=model_spec(config, slopes),
        effect=effect,
        n_entities=int(panel.describe()["n"]),
        rsquared=float(res.rsquared),
        rsquared_within=float(res.rsquared_within),
        rsquared_between=float(res.rsquared_between),
        rsquared_overall=float(res.rsquared_overall),
        model=res,
        extra={"dropped": dropped, "sigma_e": float(np.sqrt(s2))},
    )
    return apply_cov_type(result, config)


def estimate_lsdv(panel: PanelData, config: StudyConfig, effect: str = "individual") -> PanelModelResult:
    """Least-squares dummy variables: OLS with the absorbed effects as C() dummies.

    Only the slope coefficients are reported; they coincide with the within
    estimator, while the residual degrees of freedom count every dummy.
    """
    regs = config.model_vars
    varying = panel.varying_columns(regs, effect)
    e, t = config.entity_col, config.time_col

    fe_terms: List[str] = []
    if effect in ("individual", "twoways"):
        fe_terms.append(e)
    if effect in ("time", "twoways"):
        fe_terms.append(t)
    fe_rhs = [f"C({c})" for c in fe_terms]
    formula = f"{config.outcome} ~ " + " + ".join(varying + fe_rhs)

    df = panel.panel
    m = smf.ols(formula, data=df).fit()

    design = panel.within_transform(varying, effect)
    result = PanelModelResult(
        name=f"LSDV ({_LABELS[effect]} dummies)",
        kind="lsdv",
        params=m.params[varying],
        cov=m.cov_params().loc[varying, varying],
        nobs=int(m.nobs),
        df_resid=float(m.df_resid),
        resid=pd.Series(m.resid, index=df.index),
        design=design,
        entity=panel.entity,
        time=panel.time,
        spec=model_spec(config, varying),
        effect=effect,
        n_entities=int(df[e].nunique()),
        rsquared=float(m.rsquared),
        model=m,
        extra={"formula": formula, "n_dummies": int(len(m.params) - len(varying) - 1)},
    )
    return apply_cov_type(result, config)
