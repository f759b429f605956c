# panel_study/estimators/random.py
"""
Random-effects (feasible GLS) estimator.

The model ``y_it = a + x_it'b + u_i + e_it`` is estimated by OLS on
quasi-demeaned data::

    y*_it = y_it - theta_i * ybar_i
    theta_i = 1 - sqrt(s2_e / (s2_e + T_i * s2_u))

which needs estimates of the idiosyncratic variance ``s2_e`` and the
entity variance ``s2_u``.  The four classical estimators of these variance
components are available (names follow ``plm``'s ``random.method``):

``swar``
    Swamy-Arora.  ``s2_e`` from the within regression; ``s2_u`` from the
    between regression net of ``s2_e / T_h`` (``T_h`` the harmonic mean of
    the ``T_i``).  This is what Stata's ``xtreg, re`` computes.
``walhus``
    Wallace-Hussain.  Both components from pooled OLS residuals.
``amemiya``
    Both components from within-estimator residuals (overall intercept
    restored).
``nerlove``
    ``s2_e = SSR_within / N`` and ``s2_u`` the sample variance of the
    estimated fixed effects.

A negative ``s2_u`` estimate is truncated to zero, in which case theta is
zero and the estimator collapses to pooled OLS.
"""
from __future__ import annotations

import warnings
from typing import Any, Dict

import numpy as np
import pandas as pd
import statsmodels.api as sm

from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData
from .base import PanelModelResult, apply_cov_type, model_spec, stata_r2


def _lstsq(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    if X.shape[1] == 0:
        return np.zeros(0)
    return np.linalg.lstsq(X, y, rcond=None)[0]


def variance_components(panel: PanelData, config: StudyConfig, method: str = "swar") -> Dict[str, Any]:
    """Estimate ``(sigma2_e, sigma2_u)`` with the named method."""
    regs = config.model_vars
    outcome = config.outcome
    df = panel.panel
    ent = panel.entity

    y = df[outcome].to_numpy(float)
    Ti = df.groupby(config.entity_col).size()
    N, n, K = len(df), len(Ti), len(regs)

    # within regression (only regressors that vary within entities)
    varying = panel.varying_columns(regs, "individual")
    dm = panel.within_transform([outcome] + varying, "individual")
    Xw = dm[varying].to_numpy(float)
    bw = _lstsq(Xw, dm[outcome].to_numpy(float))
    ew = dm[outcome].to_numpy(float) - Xw @ bw
    ssr_w = float(ew @ ew)
    Kw = len(varying)

    if method == "swar":
        s2e = ssr_w / (N - n - Kw)
        means = panel.entity_means([outcome] + regs)
        Xb = np.column_stack([np.ones(n), means[regs].to_numpy(float)])
        yb = means[outcome].to_numpy(float)
        eb = yb - Xb @ _lstsq(Xb, yb)
        s2b = float(eb @ eb) / (n - K - 1)
        T_h = n / float(np.sum(1.0 / Ti.to_numpy(float)))
        s2u = s2b - s2e / T_h
    elif method in ("walhus", "amemiya"):
        if method == "walhus":
            Xp = np.column_stack([np.ones(N), df[regs].to_numpy(float)])
            u = y - Xp @ _lstsq(Xp, y)
        else:
            u = y - df[varying].to_numpy(float) @ bw
            u = u - u.mean()
        u_s = pd.Series(u)
        ubar = u_s.groupby(ent).mean()
        within_ss = float(((u_s - u_s.groupby(ent).transform("mean")) ** 2).sum())
        s2e = within_ss / (N - n) if method == "walhus" else ssr_w / (N - n - Kw)
        Ti_al = Ti.reindex(ubar.index).to_numpy(float)
        s2u = (float(np.sum(Ti_al * ubar.to_numpy(float) ** 2)) - n * s2e) / N
    elif method == "nerlove":
        s2e = ssr_w / N
        means = panel.entity_means([outcome] + varying)
        alpha = means[outcome].to_numpy(float) - means[varying].to_numpy(float) @ bw
        s2u = float(np.var(alpha, ddof=1))
    else:
        raise ValueError(f"Unknown random-effects method '{method}'")

    if s2u < 0:
        warnings.warn(
            f"[{method}] negative entity variance estimate ({s2u:.4g}) set to zero; "
            "random effects reduce to pooled OLS",
            RuntimeWarning,
        )
        s2u = 0.0

    return {"method": method, "sigma2_e": float(s2e), "sigma2_u": float(s2u), "Ti": Ti}


def estimate_random(panel: PanelData, config: StudyConfig, method: str = "swar") -> PanelModelResult:
    """Random effects by GLS with the chosen variance-components estimator."""
    regs = config.model_vars
    outcome = config.outcome
    df = panel.panel
    ent = panel.entity

    vc = variance_components(panel, config, method)
    s2e, s2u = vc["sigma2_e"], vc["sigma2_u"]
    Ti_row = df.groupby(config.entity_col)[outcome].transform("count").to_numpy(float)
    theta = 1.0 - np.sqrt(s2e / (s2e + Ti_row * s2u))

    cols = [outcome] + regs
    row_means = df.groupby(config.entity_col)[cols].transform("mean")
    star = df[cols].astype(float) - row_means.mul(theta, axis=0)
    design = star[regs].copy()
    design.insert(0, "const", 1.0 - theta)

    m = sm.OLS(star[outcome], design).fit()

    X_raw = np.column_stack([np.ones(len(df)), df[regs].to_numpy(float)])
    r2 = stata_r2(df[outcome].to_numpy(float), X_raw, m.params.to_numpy(float), ent)

    if panel.is_balanced:
        theta_info: Any = float(theta[0])
    else:
        theta_info = {
            "min": float(theta.min()),
            "median": float(np.median(theta)),
            "max": float(theta.max()),
        }

    result = PanelModelResult(
        name=f"Random effects ({method})",
        kind="random",
        params=m.params,
        cov=m.cov_params(),
        nobs=int(m.nobs),
        df_resid=None,
        resid=pd.Series(m.resid, index=df.index),
        design=design,
        entity=ent,
        time=panel.time,
        spec=model_spec(config, regs, random_method=method),
        n_entities=int(len(vc["Ti"])),
        rsquared=float(m.rsquared),
        rsquared_within=r2["within"],
        rsquared_between=r2["between"],
        rsquared_overall=r2["overall"],
        model=m,
        extra={
            "method": method,
            "sigma2_e": s2e,
            "sigma2_u": s2u,
            "sigma_e": float(np.sqrt(s2e)),
            "sigma_u": float(np.sqrt(s2u)),
            "rho": float(s2u / (s2u + s2e)) if (s2u + s2e) > 0 else np.nan,
            "theta": theta_info,
        },
    )
    return apply_cov_type(result, config)
