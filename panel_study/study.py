# panel_study/study.py
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import pandas as pd

from .estimator import PanelEstimator, PanelModelResult
from .helpers.config import StudyConfig
from .helpers.preparation import PanelData
from .robustness.hausman import HausmanResult, hausman_auxiliary, hausman_test
from .robustness.vcov import cluster_vcov, pcse_vcov, with_vcov


@dataclass
class PanelStudyResult:
    """Container for all outputs of a PanelStudy run."""
    config: StudyConfig
    data: PanelData
    dims: Dict[str, Any] = field(default_factory=dict)

    # Estimators
    pooled: Optional[PanelModelResult] = None
    within: Dict[str, PanelModelResult] = field(default_factory=dict)
    lsdv: Dict[str, PanelModelResult] = field(default_factory=dict)
    between: Optional[PanelModelResult] = None
    random: Dict[str, PanelModelResult] = field(default_factory=dict)
    fd: Optional[PanelModelResult] = None
    iv: Optional[PanelModelResult] = None

    # Specification tests / inference
    hausman: Optional[HausmanResult] = None
    hausman_aux: Optional[HausmanResult] = None
    corrections: Dict[str, PanelModelResult] = field(default_factory=dict)

    # Cross-check against R plm (model, term, python, r, abs_diff)
    r_check: Optional[pd.DataFrame] = None

    def models(self) -> "OrderedDict[str, PanelModelResult]":
        """Every fitted model in pipeline order, keyed by a short label."""
        out: "OrderedDict[str, PanelModelResult]" = OrderedDict()
        if self.pooled is not None:
            out["pooled"] = self.pooled
        for eff, res in self.within.items():
            out[f"within:{eff}"] = res
        for eff, res in self.lsdv.items():
            out[f"lsdv:{eff}"] = res
        if self.between is not None:
            out["between"] = self.between
        for method, res in self.random.items():
            out[f"random:{method}"] = res
        if self.fd is not None:
            out["fd"] = self.fd
        if self.iv is not None:
            out["iv"] = self.iv
        return out

    @property
    def fe(self) -> Optional[PanelModelResult]:
        return next(iter(self.within.values()), None)

    @property
    def re(self) -> Optional[PanelModelResult]:
        return next(iter(self.random.values()), None)


class PanelStudy:
    """Orchestrates the full panel-regression pipeline."""

    def __init__(self, config: StudyConfig) -> None:
        self.config = config
        self._estimator: Optional[PanelEstimator] = None
        self._panel: Optional[PanelData] = None

    @property
    def estimator(self) -> PanelEstimator:
        if self._estimator is None:
            raise RuntimeError("Estimator not initialised yet. Call .run().")
        return self._estimator

    @property
    def panel(self) -> PanelData:
        if self._panel is None:
            raise RuntimeError("Panel not prepared yet. Call .run().")
        return self._panel

    def _log(self, message: str) -> None:
        if self.config.verbose:
            print(f"[PANEL] {message}")

    def run(
        self,
        *,
        run_pooled: bool = True,
        run_within: bool = True,
        run_lsdv: bool = True,
        run_between: bool = True,
        run_random: bool = True,
        run_fd: bool = True,
        run_iv: bool = True,
        run_hausman: bool = True,
        run_corrections: bool = True,
        run_r_check: Optional[bool] = None,
    ) -> PanelStudyResult:
        """
        Run the full panel study pipeline.

        Parameters
        ----------
        run_pooled, run_within, run_lsdv, run_between, run_random, run_fd, run_iv : bool
            Toggle individual estimators.  IV only runs when instruments are
            configured.
        run_hausman : bool
            If True (and both a within and a random-effects model exist), run
            the contrast test and, when ``config.hausman_aux`` is set, the
            auxiliary regression test.
        run_corrections : bool
            If True, compute cluster-robust and panel-corrected standard
            errors for the first within model.
        run_r_check : bool or None
            Cross-check coefficients against R ``plm``.  Defaults to
            ``config.r_bridge``.

        Returns
        -------
        PanelStudyResult
        """
        cfg = self.config

        # 1) Prepare panel
        panel = PanelData(cfg)
        self._panel = panel
        dims = panel.describe()
        self._log(
            f"n={dims['n']} entities, T={dims['T']} periods, N={dims['N']} obs "
            f"({'balanced' if dims['balanced'] else 'unbalanced'}; "
            f"{panel.info.get('rows_dropped', 0)} rows dropped listwise)"
        )

        self._estimator = PanelEstimator(cfg)
        est = self.estimator
        result = PanelStudyResult(config=cfg, data=panel, dims=dims)

        # 2) Pooled OLS
        if run_pooled:
            result.pooled = est.pooled(panel)

        # 3) Fixed effects: within + LSDV per configured effect
        if run_within:
            result.within = est.within_all(panel)
        if run_lsdv:
            result.lsdv = {eff: est.lsdv(panel, eff) for eff in cfg.effects}

        # 4) Between
        if run_between:
            result.between = est.between(panel)

        # 5) Random effects per variance-components method
        if run_random:
            result.random = est.random_all(panel)

        # 6) First difference
        if run_fd:
            result.fd = est.first_difference(panel)

        # 7) IV
        if run_iv and cfg.instruments:
            result.iv = est.iv(panel)

        # 8) Hausman FE vs RE
        fe, re = result.fe, result.re
        if run_hausman and fe is not None and re is not None:
            result.hausman = hausman_test(fe, re, alpha=cfg.alpha)
            self._log_hausman(result.hausman)
            if cfg.hausman_aux:
                result.hausman_aux = hausman_auxiliary(panel, cfg)
                self._log_hausman(result.hausman_aux)

        # 9) SE corrections on the within model
        if run_corrections and fe is not None:
            result.corrections = self._corrections(fe)

        # 10) R cross-check
        if run_r_check is None:
            run_r_check = cfg.r_bridge
        if run_r_check:
            from .robustness.r_interface import cross_check_with_r

            result.r_check = cross_check_with_r(result.models(), panel, cfg)

        return result

    def _corrections(self, fe: PanelModelResult) -> Dict[str, PanelModelResult]:
        cfg = self.config
        base = fe
        if fe.cov_label != "unadjusted":
            base = with_vcov(fe, fe.extra.get("cov_unadjusted", fe.cov), "unadjusted")
        out: Dict[str, PanelModelResult] = {"unadjusted": base}
        for by in cfg.cluster_by:
            label = f"cluster-{by}"
            V = cluster_vcov(fe, by=by, adjustment=cfg.cluster_adjustment)
            out[label] = with_vcov(fe, V, label)
        if cfg.pcse:
            label = "pcse-pairwise" if cfg.pcse_pairwise else "pcse-casewise"
            out[label] = with_vcov(fe, pcse_vcov(fe, pairwise=cfg.pcse_pairwise), label)
        self._log(f"SE corrections on {fe.name}: {', '.join(out)}")
        return out

    def _log_hausman(self, h: HausmanResult) -> None:
        if self.config.verbose:
            print(
                f"[HAUSMAN] {h.method}: chi2({h.df}) = {h.stat:.3f}, p = {h.p_value:.4f} "
                f"-> {h.recommendation}"
            )
