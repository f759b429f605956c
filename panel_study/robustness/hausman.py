"""
Hausman specification tests: fixed vs random effects.

Two flavours are provided:

* :func:`hausman_test` -- the classical contrast
  ``H = (b_FE - b_RE)' [V_FE - V_RE]^+ (b_FE - b_RE)`` over the common
  slope coefficients, with ``df = rank(V_FE - V_RE)`` (Stata's
  ``hausman fe re``; R's ``phtest(fe, re)``).
* :func:`hausman_auxiliary` -- the regression-based (Mundlak) variant:
  pooled OLS augmented with the entity means of the time-varying
  regressors, followed by a cluster-robust Wald test that the mean
  coefficients are jointly zero.  Unlike the contrast it stays valid
  when the errors are heteroskedastic or serially correlated.

The null of both tests is that the random-effects estimator is
consistent.  Rejection favours fixed effects.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.stats import chi2

from ..helpers.commands import hausman_commands
from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData


@dataclass
class HausmanResult:
    stat: float
    df: int
    p_value: float
    tested: List[str]
    recommendation: str
    method: str = "contrast"
    non_psd: bool = False
    alpha: float = 0.05
    commands: Dict[str, str] = field(default_factory=dict)

    @property
    def reject(self) -> bool:
        return bool(self.p_value < self.alpha)


def _recommend(p_value: float, alpha: float) -> str:
    if not np.isfinite(p_value):
        return "undetermined"
    if p_value < alpha:
        return "fixed effects (random effects inconsistent)"
    return "random effects (no systematic difference)"


def _wald(b: np.ndarray, V: np.ndarray, rank_df: bool = False) -> Dict[str, float]:
    # symmetrise covariance
    V = 0.5 * (V + V.T)
    Vinv = np.linalg.pinv(V, rcond=1e-12)
    stat = float(b.T @ Vinv @ b)
    k = int(np.linalg.matrix_rank(V)) if rank_df else len(b)
    p = float(chi2.sf(stat, df=k)) if k > 0 else np.nan
    return {"stat": stat, "df": k, "p_value": p}


def hausman_test(fe, re, alpha: float = 0.05) -> HausmanResult:
    """Contrast test between a within and a random-effects result.

    ``fe`` and ``re`` are :class:`~panel_study.estimators.base.PanelModelResult`
    objects fitted on the same sample.  Only slope coefficients present in
    both models enter the test (the constant and anything the within
    transformation dropped are excluded).
    """
    for res in (fe, re):
        if res.cov_label != "unadjusted":
            warnings.warn(
                f"{res.name} carries a '{res.cov_label}' covariance; the classical "
                "Hausman contrast assumes the efficient (unadjusted) one. "
                "Use hausman_auxiliary for a robust version.",
                RuntimeWarning,
            )

    tested = [c for c in fe.params.index if c != "const" and c in re.params.index]
    if not tested:
        raise ValueError("No common slope coefficients between the two models")

    diff = (fe.params[tested] - re.params[tested]).to_numpy(float)
    V = (fe.cov.loc[tested, tested] - re.cov.loc[tested, tested]).to_numpy(float)
    V = 0.5 * (V + V.T)

    non_psd = bool(np.min(np.linalg.eigvalsh(V)) <= 0)
    if non_psd:
        warnings.warn(
            "V_FE - V_RE is not positive definite; using the generalized inverse "
            "and df = rank of the difference",
            RuntimeWarning,
        )

    out = _wald(diff, V, rank_df=True)
    return HausmanResult(
        stat=out["stat"],
        df=out["df"],
        p_value=out["p_value"],
        tested=tested,
        recommendation=_recommend(out["p_value"], alpha),
        method="contrast",
        non_psd=non_psd,
        alpha=alpha,
        commands=hausman_commands("contrast"),
    )


def hausman_auxiliary(
    panel: PanelData,
    config: StudyConfig,
    regressors: Optional[List[str]] = None,
) -> HausmanResult:
    """Mundlak regression test with entity-clustered standard errors.

    Fits ``y ~ const + X + mean_i(X_varying)`` by pooled OLS and tests the
    coefficients of the ``mean_*`` columns jointly.
    """
    regs = list(regressors) if regressors is not None else config.model_vars
    varying = panel.varying_columns(regs, "individual")
    if not varying:
        raise ValueError("No time-varying regressors: the auxiliary test is undefined")

    df = panel.panel
    means = df.groupby(config.entity_col)[varying].transform("mean")
    means.columns = [f"mean_{c}" for c in varying]

    X = pd.concat([df[regs].astype(float), means], axis=1)
    X = sm.add_constant(X, has_constant="add")
    groups = pd.factorize(df[config.entity_col])[0]
    m = sm.OLS(df[config.outcome].astype(float), X).fit(
        cov_type="cluster", cov_kwds={"groups": groups}
    )

    tested = list(means.columns)
    b = m.params.loc[tested].to_numpy(float)
    V = m.cov_params().loc[tested, tested].to_numpy(float)
    out = _wald(b, V)

    return HausmanResult(
        stat=out["stat"],
        df=out["df"],
        p_value=out["p_value"],
        tested=tested,
        recommendation=_recommend(out["p_value"], config.alpha),
        method="auxiliary",
        non_psd=False,
        alpha=config.alpha,
        commands=hausman_commands("auxiliary"),
    )
