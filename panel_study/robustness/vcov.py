"""
Post-hoc covariance estimators for fitted panel models.

Every function here works on the pieces a
:class:`~panel_study.estimators.base.PanelModelResult` keeps around: the
final-stage regressor matrix ``design`` (the transformed X whose sandwich
gives the covariance; for 2SLS the first-stage projection), the residuals and
the entity / time label of each row.  Nothing is refit, which mirrors how
``lmtest::coeftest(m, vcov = ...)`` and Stata's ``vce()`` options swap the
covariance of an existing estimate.

Available corrections:

* :func:`cluster_vcov` - Arellano / Liang-Zeger clustering by entity, by
  period, or both (Cameron, Gelbach and Miller).
* :func:`hc_vcov` - White heteroskedasticity-robust HC0 / HC1.
* :func:`pcse_vcov` - Beck and Katz panel-corrected standard errors.

:func:`coef_table` builds the ``coeftest`` style table for any
(params, cov) pair.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

if TYPE_CHECKING:  # pragma: no cover
    from ..estimators.base import PanelModelResult


# ---------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------

def coef_table(
    params: pd.Series,
    cov: pd.DataFrame,
    df_resid: Optional[float] = None,
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Estimate / std. error / t / p / CI table.

    Uses the t distribution with ``df_resid`` degrees of freedom, or the
    standard normal when ``df_resid`` is ``None`` (large-sample z tests, as
    Stata reports for ``xtreg, re`` and ``ivregress``).
    """
    names = list(params.index)
    se = pd.Series(np.sqrt(np.clip(np.diag(cov.loc[names, names].to_numpy(float)), 0.0, None)), index=names)
    stat = params / se
    if df_resid is not None and np.isfinite(df_resid) and df_resid > 0:
        dist = stats.t(df=df_resid)
    else:
        dist = stats.norm()
    p = pd.Series(2.0 * dist.sf(np.abs(stat.to_numpy(float))), index=names)
    crit = float(dist.ppf(1.0 - alpha / 2.0))
    return pd.DataFrame(
        {
            "coef": params,
            "se": se,
            "stat": stat,
            "p": p,
            "lo": params - crit * se,
            "hi": params + crit * se,
        }
    )


# ---------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------

def _pieces(result: "PanelModelResult") -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    X = result.design.loc[:, list(result.params.index)].to_numpy(float)
    e = np.asarray(result.resid, dtype=float)
    if X.shape[0] != e.shape[0]:
        raise ValueError(
            f"design has {X.shape[0]} rows but residuals have {e.shape[0]}"
        )
    bread = np.linalg.pinv(X.T @ X)
    return X, e, bread


def _as_frame(V: np.ndarray, result: "PanelModelResult") -> pd.DataFrame:
    names = list(result.params.index)
    V = 0.5 * (V + V.T)
    return pd.DataFrame(V, index=names, columns=names)


def _cluster_meat(X: np.ndarray, e: np.ndarray, groups: np.ndarray) -> Tuple[np.ndarray, int]:
    codes, uniques = pd.factorize(pd.Series(groups), sort=True)
    G = len(uniques)
    scores = np.zeros((G, X.shape[1]))
    np.add.at(scores, codes, X * e[:, None])
    return scores.T @ scores, G


def _cluster_factor(adjustment: str, G: int, N: int, K: int) -> float:
    if adjustment == "hc0":
        return 1.0
    if G < 2:
        raise ValueError("Clustered covariance needs at least two clusters")
    if adjustment == "hc1":
        return G / (G - 1.0)
    if adjustment == "stata":
        return G / (G - 1.0) * (N - 1.0) / (N - K)
    raise ValueError(f"Unknown cluster adjustment '{adjustment}'")


def _clip_psd(V: np.ndarray) -> np.ndarray:
    """Zero out negative eigenvalues (two-way clustering can produce them)."""
    V = 0.5 * (V + V.T)
    w, Q = np.linalg.eigh(V)
    if (w >= 0).all():
        return V
    return (Q * np.clip(w, 0.0, None)) @ Q.T


# ---------------------------------------------------------------------
# Public estimators
# ---------------------------------------------------------------------

def cluster_vcov(
    result: "PanelModelResult",
    by: str = "entity",
    adjustment: str = "stata",
) -> pd.DataFrame:
    """Cluster-robust sandwich covariance.

    Parameters
    ----------
    result : PanelModelResult
        Fitted model.
    by : {"entity", "time", "twoway"}
        Clustering dimension.  ``"twoway"`` combines both as
        ``V_entity + V_time - V_entity_x_time``.
    adjustment : {"stata", "hc1", "hc0"}
        Small-sample factor: ``G/(G-1) * (N-1)/(N-K)`` (Stata ``vce(cluster)``,
        R ``vcovHC(type = "sss")``), ``G/(G-1)``, or none (R's
        ``vcovHC(method = "arellano")`` default).
    """
    X, e, bread = _pieces(result)
    N, K = X.shape

    def one_way(groups: np.ndarray) -> np.ndarray:
        meat, G = _cluster_meat(X, e, groups)
        return _cluster_factor(adjustment, G, N, K) * (bread @ meat @ bread)

    if by == "entity":
        V = one_way(np.asarray(result.entity))
    elif by in ("time", "twoway"):
        if result.time is None:
            raise ValueError(f"{result.name}: no time labels, cannot cluster by {by}")
        if by == "time":
            V = one_way(np.asarray(result.time))
        else:
            ent = pd.Series(np.asarray(result.entity)).astype(str)
            tim = pd.Series(np.asarray(result.time)).astype(str)
            V = (
                one_way(np.asarray(result.entity))
                + one_way(np.asarray(result.time))
                - one_way((ent + "|" + tim).to_numpy())
            )
            V = _clip_psd(V)
    else:
        raise ValueError(f"Unknown cluster dimension '{by}'")
    return _as_frame(V, result)


def hc_vcov(result: "PanelModelResult", kind: str = "HC1") -> pd.DataFrame:
    """White heteroskedasticity-robust covariance (``vce(robust)`` is HC1)."""
    X, e, bread = _pieces(result)
    N, K = X.shape
    meat = (X * (e ** 2)[:, None]).T @ X
    kind = kind.upper()
    if kind == "HC0":
        factor = 1.0
    elif kind == "HC1":
        factor = N / (N - K)
    else:
        raise ValueError(f"Unsupported HC type '{kind}'")
    return _as_frame(factor * (bread @ meat @ bread), result)


def contemporaneous_covariance(
    result: "PanelModelResult",
    pairwise: bool = True,
) -> pd.DataFrame:
    """Entity x entity residual covariance estimated across periods.

    With ``pairwise=True`` each element uses the periods both entities are
    observed in; otherwise only periods in which every entity is observed.
    """
    if result.time is None:
        raise ValueError(f"{result.name}: panel-corrected SEs need time labels")
    frame = pd.DataFrame(
        {"entity": np.asarray(result.entity), "time": np.asarray(result.time),
         "e": np.asarray(result.resid, dtype=float)}
    )
    E = frame.pivot(index="time", columns="entity", values="e")
    if not pairwise:
        E = E.dropna(axis=0, how="any")
        if E.empty:
            raise ValueError(
                "No period observes every entity; use pairwise=True for unbalanced panels"
            )
        vals = E.to_numpy(float)
        sigma = vals.T @ vals / vals.shape[0]
    else:
        mask = E.notna().to_numpy(float)
        vals = E.fillna(0.0).to_numpy(float)
        counts = mask.T @ mask
        with np.errstate(invalid="ignore", divide="ignore"):
            sigma = np.where(counts > 0, (vals.T @ vals) / counts, 0.0)
    return pd.DataFrame(sigma, index=E.columns, columns=E.columns)


def pcse_vcov(result: "PanelModelResult", pairwise: bool = True) -> pd.DataFrame:
    """Beck-Katz panel-corrected covariance.

    ``V = (X'X)^-1 [sum_t X_t' S_t X_t] (X'X)^-1`` where ``S_t`` is the
    contemporaneous covariance restricted to the entities present in
    period ``t``.
    """
    X, _, bread = _pieces(result)
    sigma = contemporaneous_covariance(result, pairwise=pairwise)
    S = sigma.to_numpy(float)
    ent_pos = pd.Index(sigma.columns).get_indexer(np.asarray(result.entity))
    by_time = pd.Series(np.arange(len(ent_pos))).groupby(np.asarray(result.time)).indices

    meat = np.zeros((X.shape[1], X.shape[1]))
    for rows in by_time.values():
        idx = ent_pos[rows]
        Xt = X[rows]
        meat += Xt.T @ S[np.ix_(idx, idx)] @ Xt
    return _as_frame(bread @ meat @ bread, result)


def with_vcov(result: "PanelModelResult", cov: pd.DataFrame, label: str) -> "PanelModelResult":
    """Copy of ``result`` carrying ``cov``; the input result is not modified."""
    from ..helpers.commands import r_command, stata_command

    return dataclasses.replace(
        result,
        cov=cov,
        cov_label=label,
        stata_cmd=stata_command(result.kind, result.spec, result.effect, label),
        r_cmd=r_command(result.kind, result.spec, result.effect, label),
        extra=dict(result.extra),
    )
