# config.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Literal
import pandas as pd

EFFECTS = ("individual", "time", "twoways")
RANDOM_METHODS = ("swar", "walhus", "amemiya", "nerlove")
COV_TYPES = ("unadjusted", "robust", "clustered")
CLUSTER_BY = ("entity", "time", "twoway")
CLUSTER_ADJUSTMENTS = ("stata", "hc1", "hc0")
IV_MODELS = ("pooling", "within", "fd")


def _check_choices(name: str, values: Sequence[str], allowed: Sequence[str]) -> None:
    bad = [v for v in values if v not in allowed]
    if bad:
        raise ValueError(f"{name} got {bad!r}; expected a subset of {list(allowed)}")


@dataclass
class StudyConfig:
    # =========================
    # Core data
    # =========================
    # Either pass a DataFrame directly or a path / URL readable by load_table.
    df: Optional[pd.DataFrame] = None
    source: Optional[str] = None
    cache_dir: Optional[str] = None

    # =========================
    # Panel index & schema
    # =========================
    entity_col: str = "idcode"
    time_col: str = "year"
    outcome: str = "ln_wage"
    regressors: List[str] = field(
        default_factory=lambda: ["age", "ttl_exp", "tenure", "not_smsa", "south"]
    )
    # Derived columns, evaluated in order with DataFrame.eval, e.g. {"age2": "age ** 2"}
    derived: Optional[Dict[str, str]] = None

    # =========================
    # Model menu
    # =========================
    effects: List[str] = field(default_factory=lambda: ["individual"])
    random_methods: List[str] = field(default_factory=lambda: ["swar"])
    fd_intercept: bool = True

    # Instrumental variables; endogenous regressors also enter the OLS-type models
    endog: Optional[List[str]] = None
    instruments: Optional[List[str]] = None
    iv_model: Literal["pooling", "within", "fd"] = "within"

    # =========================
    # Inference
    # =========================
    # Covariance attached to every model at fit time
    cov_type: Literal["unadjusted", "robust", "clustered"] = "unadjusted"
    # Post-hoc corrections reported for the within model
    cluster_by: List[str] = field(default_factory=lambda: ["entity"])
    cluster_adjustment: Literal["stata", "hc1", "hc0"] = "stata"
    pcse: bool = True
    pcse_pairwise: bool = True
    hausman_aux: bool = True
    alpha: float = 0.05

    # =========================
    # Artifacts / output
    # =========================
    artifact_dir: Optional[str] = None
    verbose: bool = True

    # R bridge (cross-check against plm; set r_bridge=False to skip)
    r_bridge: bool = False
    r_lib_paths: Optional[List[str]] = None

    def __post_init__(self) -> None:
        _check_choices("effects", self.effects, EFFECTS)
        _check_choices("random_methods", self.random_methods, RANDOM_METHODS)
        _check_choices("cov_type", [self.cov_type], COV_TYPES)
        _check_choices("cluster_by", self.cluster_by, CLUSTER_BY)
        _check_choices("cluster_adjustment", [self.cluster_adjustment], CLUSTER_ADJUSTMENTS)
        _check_choices("iv_model", [self.iv_model], IV_MODELS)
        if self.entity_col == self.time_col:
            raise ValueError("entity_col and time_col must be different columns")
        if not 0.0 < float(self.alpha) < 1.0:
            raise ValueError(f"alpha must lie in (0, 1), got {self.alpha}")

    @property
    def model_vars(self) -> List[str]:
        """Regressors used by the OLS-type estimators (exogenous + endogenous)."""
        out = list(self.regressors)
        for c in self.endog or []:
            if c not in out:
                out.append(c)
        return out

    @property
    def sample_vars(self) -> List[str]:
        """Every column that defines the common estimation sample."""
        out = [self.outcome] + self.model_vars
        for c in self.instruments or []:
            if c not in out:
                out.append(c)
        return out

    def copy(self) -> "StudyConfig":
        # Shallow copy (df is shared); lists/dicts are copied
        return StudyConfig(
            df=self.df,
            source=self.source,
            cache_dir=self.cache_dir,
            entity_col=self.entity_col,
            time_col=self.time_col,
            outcome=self.outcome,
            regressors=list(self.regressors),
            derived=dict(self.derived) if self.derived is not None else None,
            effects=list(self.effects),
            random_methods=list(self.random_methods),
            fd_intercept=self.fd_intercept,
            endog=list(self.endog) if self.endog is not None else None,
            instruments=list(self.instruments) if self.instruments is not None else None,
            iv_model=self.iv_model,
            cov_type=self.cov_type,
            cluster_by=list(self.cluster_by),
            cluster_adjustment=self.cluster_adjustment,
            pcse=self.pcse,
            pcse_pairwise=self.pcse_pairwise,
            hausman_aux=self.hausman_aux,
            alpha=self.alpha,
            artifact_dir=self.artifact_dir,
            verbose=self.verbose,
            r_bridge=self.r_bridge,
            r_lib_paths=list(self.r_lib_paths) if self.r_lib_paths is not None else None,
        )
