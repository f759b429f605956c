from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..helpers.commands import r_command, stata_command
from ..helpers.config import StudyConfig
from ..robustness.vcov import cluster_vcov, coef_table, hc_vcov, with_vcov


@dataclass
class PanelModelResult:
    """Uniform container for every fitted panel model."""

    name: str
    kind: str                    # pooling | within | lsdv | between | random | fd | iv
    params: pd.Series
    cov: pd.DataFrame
    nobs: int
    df_resid: Optional[float]    # None -> z statistics
    resid: pd.Series
    design: pd.DataFrame         # final-stage regressors (row-aligned with resid)
    entity: np.ndarray
    time: Optional[np.ndarray]
    spec: Dict[str, Any]
    effect: Optional[str] = None
    n_entities: Optional[int] = None
    rsquared: float = np.nan
    rsquared_within: float = np.nan
    rsquared_between: float = np.nan
    rsquared_overall: float = np.nan
    cov_label: str = "unadjusted"
    model: Any = None
    stata_cmd: str = ""
    r_cmd: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def std_errors(self) -> pd.Series:
        return self.table()["se"]

    @property
    def tstats(self) -> pd.Series:
        return self.table()["stat"]

    @property
    def pvalues(self) -> pd.Series:
        return self.table()["p"]

    def conf_int(self, alpha: float = 0.05) -> pd.DataFrame:
        return self.table(alpha)[["lo", "hi"]]

    def table(self, alpha: float = 0.05) -> pd.DataFrame:
        return coef_table(self.params, self.cov, self.df_resid, alpha=alpha)


def stata_r2(y: np.ndarray, X: np.ndarray, b: np.ndarray, entity: np.ndarray) -> Dict[str, float]:
    """Within / between / overall R-squared as ``xtreg`` reports them.

    Each is the squared correlation between the outcome and the linear
    prediction ``X b`` after the matching transformation.
    """
    def _corr2(a: np.ndarray, c: np.ndarray) -> float:
        if np.std(a) == 0 or np.std(c) == 0:
            return np.nan
        return float(np.corrcoef(a, c)[0, 1] ** 2)

    xb = X @ b
    frame = pd.DataFrame({"y": y, "xb": xb})
    means = frame.groupby(entity).transform("mean")
    bmeans = frame.groupby(entity).mean()
    return {
        "within": _corr2((frame["y"] - means["y"]).to_numpy(), (frame["xb"] - means["xb"]).to_numpy()),
        "between": _corr2(bmeans["y"].to_numpy(), bmeans["xb"].to_numpy()),
        "overall": _corr2(y, xb),
    }


def model_spec(config: StudyConfig, regressors: List[str], **extra: Any) -> Dict[str, Any]:
    spec: Dict[str, Any] = {
        "outcome": config.outcome,
        "regressors": list(regressors),
        "endog": list(config.endog or []),
        "instruments": list(config.instruments or []),
        "entity": config.entity_col,
        "time": config.time_col,
    }
    spec.update(extra)
    return spec


def attach_commands(result: PanelModelResult) -> PanelModelResult:
    result.stata_cmd = stata_command(result.kind, result.spec, result.effect, result.cov_label)
    result.r_cmd = r_command(result.kind, result.spec, result.effect, result.cov_label)
    return result


def apply_cov_type(result: PanelModelResult, config: StudyConfig) -> PanelModelResult:
    """Swap in the covariance requested by ``config.cov_type``."""
    if config.cov_type == "unadjusted":
        return attach_commands(result)
    # kept so the unadjusted baseline can be restored later
    result.extra["cov_unadjusted"] = result.cov
    if config.cov_type == "robust":
        return with_vcov(result, hc_vcov(result, "HC1"), "robust")
    return with_vcov(
        result,
        cluster_vcov(result, by="entity", adjustment=config.cluster_adjustment),
        "cluster-entity",
    )


@dataclass
class BaseEstimator:
    """
    Very small common base class for the estimators in this package.

    It stores the :class:`StudyConfig` object and the tagged console
    logging used throughout the pipeline.
    """

    config: StudyConfig

    def _log(self, message: str) -> None:
        if getattr(self.config, "verbose", True):
            print(f"[ESTIMATOR] {message}")

    def _log_result(self, result: PanelModelResult) -> None:
        self._log(f"{result.name}: N={result.nobs}, K={len(result.params)} | {result.stata_cmd}")
