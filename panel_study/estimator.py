from __future__ import annotations

from typing import Dict, Optional

from panel_study.helpers.config import StudyConfig
from panel_study.helpers.preparation import PanelData
from panel_study.estimators.base import BaseEstimator, PanelModelResult
from panel_study.estimators.between import estimate_between
from panel_study.estimators.first_difference import estimate_first_difference
from panel_study.estimators.iv import estimate_iv
from panel_study.estimators.pooled import estimate_pooled
from panel_study.estimators.random import estimate_random
from panel_study.estimators.within import estimate_lsdv, estimate_within


class PanelEstimator(BaseEstimator):
    """
    Thin façade over the estimator functions.

    Keeps the per-model calls uniform for :class:`~panel_study.study.PanelStudy`
    and logs each fit with its Stata equivalent.
    """

    def __init__(self, config: StudyConfig) -> None:
        super().__init__(config)

    def _done(self, result: PanelModelResult) -> PanelModelResult:
        self._log_result(result)
        return result

    # ---------------------------------------------------------
    # Pooled / between
    # ---------------------------------------------------------
    def pooled(self, panel: PanelData) -> PanelModelResult:
        return self._done(estimate_pooled(panel, self.config))

    def between(self, panel: PanelData) -> PanelModelResult:
        return self._done(estimate_between(panel, self.config))

    # ---------------------------------------------------------
    # Fixed effects
    # ---------------------------------------------------------
    def within(self, panel: PanelData, effect: str = "individual") -> PanelModelResult:
        result = estimate_within(panel, self.config, effect)
        if result.extra.get("dropped"):
            self._log(f"omitted (no within variation): {result.extra['dropped']}")
        return self._done(result)

    def lsdv(self, panel: PanelData, effect: str = "individual") -> PanelModelResult:
        return self._done(estimate_lsdv(panel, self.config, effect))

    def within_all(self, panel: PanelData) -> Dict[str, PanelModelResult]:
        return {eff: self.within(panel, eff) for eff in self.config.effects}

    # ---------------------------------------------------------
    # Random effects
    # ---------------------------------------------------------
    def random(self, panel: PanelData, method: str = "swar") -> PanelModelResult:
        result = estimate_random(panel, self.config, method)
        ex = result.extra
        self._log(
            f"variance components ({method}): sigma_u={ex['sigma_u']:.4f}, "
            f"sigma_e={ex['sigma_e']:.4f}, rho={ex['rho']:.4f}"
        )
        return self._done(result)

    def random_all(self, panel: PanelData) -> Dict[str, PanelModelResult]:
        return {m: self.random(panel, m) for m in self.config.random_methods}

    # ---------------------------------------------------------
    # First difference / IV
    # ---------------------------------------------------------
    def first_difference(self, panel: PanelData) -> PanelModelResult:
        return self._done(estimate_first_difference(panel, self.config))

    def iv(self, panel: PanelData, model: Optional[str] = None) -> PanelModelResult:
        return self._done(estimate_iv(panel, self.config, model))


__all__ = ["PanelEstimator", "PanelModelResult"]
