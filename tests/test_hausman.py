import dataclasses

import numpy as np
import pytest

from panel_study.estimators.random import estimate_random
from panel_study.estimators.within import estimate_within
from panel_study.helpers.preparation import PanelData
from panel_study.robustness.hausman import HausmanResult, hausman_auxiliary, hausman_test
from panel_study.robustness.vcov import cluster_vcov, with_vcov


@pytest.fixture()
def fe_re(balanced_panel, balanced_cfg):
    fe = estimate_within(balanced_panel, balanced_cfg, "individual")
    re = estimate_random(balanced_panel, balanced_cfg, "swar")
    return fe, re


def test_contrast_rejects_with_correlated_effects(fe_re):
    fe, re = fe_re
    h = hausman_test(fe, re)
    assert isinstance(h, HausmanResult)
    assert h.method == "contrast"
    assert h.tested == ["x1", "x2"]
    assert h.df <= 2
    assert h.stat > 0
    assert h.p_value < 0.01
    assert h.reject
    assert h.recommendation.startswith("fixed effects")
    assert h.commands["stata"].endswith("hausman fe re")
    assert h.commands["r"] == "phtest(fe, re)"


def test_contrast_statistic_formula(fe_re):
    fe, re = fe_re
    h = hausman_test(fe, re)
    d = (fe.params[h.tested] - re.params[h.tested]).to_numpy()
    V = (fe.cov.loc[h.tested, h.tested] - re.cov.loc[h.tested, h.tested]).to_numpy()
    assert h.stat == pytest.approx(float(d @ np.linalg.pinv(V) @ d), rel=1e-6)


def test_contrast_flags_non_psd_difference(fe_re):
    fe, re = fe_re
    inflated = dataclasses.replace(re, cov=re.cov * 1000.0)
    with pytest.warns(RuntimeWarning, match="not positive definite"):
        h = hausman_test(fe, inflated)
    assert h.non_psd


def test_contrast_warns_on_robust_covariance(fe_re):
    fe, re = fe_re
    fe_cl = with_vcov(fe, cluster_vcov(fe), "cluster-entity")
    with pytest.warns(RuntimeWarning, match="cluster-entity"):
        hausman_test(fe_cl, re)


def test_contrast_needs_common_terms(fe_re):
    fe, re = fe_re
    only_const = dataclasses.replace(re, params=re.params[["const"]], cov=re.cov.loc[["const"], ["const"]])
    with pytest.raises(ValueError):
        hausman_test(fe, only_const)


def test_auxiliary_rejects_with_correlated_effects(balanced_panel, balanced_cfg):
    h = hausman_auxiliary(balanced_panel, balanced_cfg)
    assert h.method == "auxiliary"
    assert h.tested == ["mean_x1", "mean_x2"]
    assert h.df == 2
    assert h.p_value < 0.01
    assert "xtoverid" in h.commands["stata"]
    assert 'method = "aux"' in h.commands["r"]


def test_auxiliary_needs_time_varying_regressor(config_factory, balanced_df):
    cfg = config_factory(balanced_df, regressors=["z"])
    with pytest.raises(ValueError, match="time-varying"):
        hausman_auxiliary(PanelData(cfg), cfg)
