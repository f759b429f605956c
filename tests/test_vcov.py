import dataclasses

import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from panel_study.estimators.pooled import estimate_pooled
from panel_study.estimators.within import estimate_within
from panel_study.helpers.preparation import PanelData
from panel_study.robustness.vcov import (
    cluster_vcov,
    coef_table,
    contemporaneous_covariance,
    hc_vcov,
    pcse_vcov,
    with_vcov,
)


@pytest.fixture()
def pooled(balanced_panel, balanced_cfg):
    return estimate_pooled(balanced_panel, balanced_cfg)


def _sm_fit(panel, **fit_kwargs):
    df = panel.panel
    return sm.OLS(df["y"], sm.add_constant(df[["x1", "x2", "z"]])).fit(**fit_kwargs)


def test_cluster_by_entity_matches_statsmodels(pooled, balanced_panel):
    ref = _sm_fit(
        balanced_panel,
        cov_type="cluster",
        cov_kwds={"groups": pd.factorize(balanced_panel.panel["id"])[0]},
    )
    V = cluster_vcov(pooled, by="entity", adjustment="stata")
    np.testing.assert_allclose(V.to_numpy(), ref.cov_params().to_numpy(), rtol=1e-8)


def test_hc1_matches_statsmodels(pooled, balanced_panel):
    ref = _sm_fit(balanced_panel, cov_type="HC1")
    np.testing.assert_allclose(hc_vcov(pooled, "HC1").to_numpy(), ref.cov_params().to_numpy(), rtol=1e-8)
    ref0 = _sm_fit(balanced_panel, cov_type="HC0")
    np.testing.assert_allclose(hc_vcov(pooled, "hc0").to_numpy(), ref0.cov_params().to_numpy(), rtol=1e-8)
    with pytest.raises(ValueError):
        hc_vcov(pooled, "HC3")


def test_cluster_adjustments_are_scalar_multiples(pooled):
    G, N, K = 80, 480, 4
    v0 = cluster_vcov(pooled, adjustment="hc0").to_numpy()
    v1 = cluster_vcov(pooled, adjustment="hc1").to_numpy()
    vs = cluster_vcov(pooled, adjustment="stata").to_numpy()
    np.testing.assert_allclose(v1, v0 * G / (G - 1), rtol=1e-12)
    np.testing.assert_allclose(vs, v0 * G / (G - 1) * (N - 1) / (N - K), rtol=1e-12)


def test_twoway_cluster_is_psd_and_combines_dimensions(balanced_panel, balanced_cfg):
    fe = estimate_within(balanced_panel, balanced_cfg, "individual")
    V2 = cluster_vcov(fe, by="twoway", adjustment="hc0")
    assert np.min(np.linalg.eigvalsh(V2.to_numpy())) >= -1e-12
    Ve = cluster_vcov(fe, by="entity", adjustment="hc0").to_numpy()
    Vt = cluster_vcov(fe, by="time", adjustment="hc0").to_numpy()
    # each (entity, time) cell is a single row here, so V_et is HC0
    Vw = hc_vcov(fe, "HC0").to_numpy()
    raw = Ve + Vt - Vw
    if np.min(np.linalg.eigvalsh(raw)) >= 0:
        np.testing.assert_allclose(V2.to_numpy(), raw, rtol=1e-8, atol=1e-14)


def test_cluster_errors(pooled):
    with pytest.raises(ValueError):
        cluster_vcov(pooled, by="region")
    no_time = dataclasses.replace(pooled, time=None)
    with pytest.raises(ValueError, match="time labels"):
        cluster_vcov(no_time, by="time")
    one = dataclasses.replace(pooled, entity=np.zeros(pooled.nobs))
    with pytest.raises(ValueError, match="two clusters"):
        cluster_vcov(one, by="entity", adjustment="stata")


def test_pcse_matches_explicit_kronecker(pooled, balanced_panel):
    # rows are sorted by entity then time: Omega = Sigma kron I_T
    n, T = 80, 6
    e = pooled.resid.to_numpy().reshape(n, T)
    sigma = e @ e.T / T
    X = pooled.design.to_numpy(float)
    omega = np.kron(sigma, np.eye(T))
    bread = np.linalg.inv(X.T @ X)
    expected = bread @ X.T @ omega @ X @ bread

    np.testing.assert_allclose(pcse_vcov(pooled, pairwise=True).to_numpy(), expected, rtol=1e-8)
    np.testing.assert_allclose(pcse_vcov(pooled, pairwise=False).to_numpy(), expected, rtol=1e-8)


def test_pcse_casewise_uses_complete_periods(unbalanced_panel, unbalanced_cfg):
    res = estimate_pooled(unbalanced_panel, unbalanced_cfg)
    sigma_pw = contemporaneous_covariance(res, pairwise=True)
    assert sigma_pw.shape == (80, 80)
    # periods 2000 and 2001 are complete, so casewise works on those only
    sigma_cw = contemporaneous_covariance(res, pairwise=False)
    assert sigma_cw.shape == (80, 80)
    V = pcse_vcov(res, pairwise=True)
    assert np.all(np.diag(V.to_numpy()) > 0)


def test_pcse_casewise_without_complete_period_raises(config_factory, balanced_df):
    # each entity skips one year, and every year misses some entity
    df = balanced_df.loc[(balanced_df["id"] - 1) % 6 != balanced_df["year"] - 2000]
    cfg = config_factory(df.reset_index(drop=True))
    res = estimate_pooled(PanelData(cfg), cfg)
    with pytest.raises(ValueError, match="No period observes every entity"):
        contemporaneous_covariance(res, pairwise=False)
    with pytest.raises(ValueError, match="No period observes every entity"):
        pcse_vcov(res, pairwise=False)
    assert contemporaneous_covariance(res, pairwise=True).shape == (80, 80)


def test_with_vcov_returns_copy_with_commands(pooled):
    V = cluster_vcov(pooled, by="time")
    new = with_vcov(pooled, V, "cluster-time")
    assert pooled.cov_label == "unadjusted"
    assert new.cov_label == "cluster-time"
    assert new.stata_cmd.endswith("vce(cluster year)")
    assert 'cluster = "time"' in new.r_cmd
    assert new.cov is V
    assert not np.allclose(new.std_errors, pooled.std_errors)
    np.testing.assert_allclose(new.params, pooled.params)


def test_coef_table_normal_and_t():
    params = pd.Series([1.96, 0.0], index=["a", "b"])
    cov = pd.DataFrame(np.eye(2), index=params.index, columns=params.index)
    z = coef_table(params, cov)
    assert z.loc["a", "p"] == pytest.approx(0.05, abs=1e-3)
    assert z.loc["b", "p"] == pytest.approx(1.0)
    assert z.loc["a", "lo"] == pytest.approx(0.0, abs=1e-3)
    t = coef_table(params, cov, df_resid=5)
    assert t.loc["a", "p"] > z.loc["a", "p"]
    assert list(t.columns) == ["coef", "se", "stat", "p", "lo", "hi"]
