import matplotlib.pyplot as plt
import pandas as pd
import pytest

from panel_study.reporting.plotting import plot_coefficients, plot_se_comparison
from panel_study.reporting.summary import (
    comparison_table,
    print_study_summary,
    render_markdown,
    write_markdown_report,
)
from panel_study.study import PanelStudy


@pytest.fixture()
def study_result(config_factory, iv_df):
    df = iv_df.copy()
    df["z"] = (df["id"] % 3 == 0).astype(float)
    cfg = config_factory(
        df,
        regressors=["x1", "w", "z"],
        endog=["w"],
        instruments=["q1", "q2"],
        effects=["individual", "twoways"],
        random_methods=["swar", "amemiya"],
        cluster_by=["entity", "time", "twoway"],
    )
    return PanelStudy(cfg).run()


def test_estimator_before_run_raises(balanced_cfg):
    study = PanelStudy(balanced_cfg)
    with pytest.raises(RuntimeError):
        study.estimator
    with pytest.raises(RuntimeError):
        study.panel


def test_full_pipeline(study_result):
    models = study_result.models()
    assert list(models) == [
        "pooled",
        "within:individual",
        "within:twoways",
        "lsdv:individual",
        "lsdv:twoways",
        "between",
        "random:swar",
        "random:amemiya",
        "fd",
        "iv",
    ]
    assert study_result.dims["n"] == 200
    assert study_result.fe is study_result.within["individual"]
    assert study_result.re is study_result.random["swar"]
    assert study_result.hausman is not None
    assert study_result.hausman_aux is not None
    assert list(study_result.corrections) == [
        "unadjusted",
        "cluster-entity",
        "cluster-time",
        "cluster-twoway",
        "pcse-pairwise",
    ]
    assert study_result.r_check is None


def test_run_toggles(balanced_cfg):
    res = PanelStudy(balanced_cfg).run(
        run_lsdv=False, run_between=False, run_random=False, run_fd=False, run_corrections=False
    )
    assert list(res.models()) == ["pooled", "within:individual"]
    # no random-effects model -> no Hausman test
    assert res.hausman is None
    assert res.corrections == {}
    assert res.iv is None


def test_corrections_baseline_is_unadjusted_under_clustered_fit(config_factory, balanced_df):
    cfg = config_factory(balanced_df, cov_type="clustered", pcse=False)
    res = PanelStudy(cfg).run(run_lsdv=False, run_random=False, run_fd=False)
    fe = res.fe
    assert fe.cov_label == "cluster-entity"

    base = res.corrections["unadjusted"]
    assert base.cov_label == "unadjusted"
    assert "vce(" not in base.stata_cmd

    plain = PanelStudy(config_factory(balanced_df, pcse=False)).run(
        run_lsdv=False, run_random=False, run_fd=False
    )
    pd.testing.assert_series_equal(base.std_errors, plain.fe.std_errors)
    pd.testing.assert_series_equal(
        res.corrections["cluster-entity"].std_errors, fe.std_errors
    )


def test_verbose_logging(config_factory, balanced_df, capsys):
    cfg = config_factory(balanced_df, verbose=True, pcse=False)
    PanelStudy(cfg).run(run_lsdv=False, run_fd=False)
    out = capsys.readouterr().out
    assert "[PANEL] n=80 entities, T=6 periods, N=480 obs (balanced" in out
    assert "[HAUSMAN] contrast" in out
    assert "[HAUSMAN] auxiliary" in out


def test_comparison_table_layout(study_result):
    models = study_result.models()
    tbl = comparison_table(models)
    assert list(tbl.columns) == list(models)
    assert tbl.index[-3:].tolist() == ["N", "entities", "R2"]
    assert tbl.index[-4] == ""
    assert tbl.index[-5] == "const"
    assert tbl.loc["N", "between"] == "200"
    assert tbl.loc["N", "fd"] == "800"
    se_row = tbl.index.get_loc("x1") + 1
    assert tbl.iloc[se_row]["pooled"].startswith("(")


def test_print_study_summary(study_result, capsys):
    print_study_summary(study_result)
    out = capsys.readouterr().out
    for heading in ("PANEL", "Model comparison", "Standard-error corrections", "Hausman test (FE vs RE)"):
        assert heading in out
    assert "Stata: xtreg y x1 w, fe" in out
    assert "sigma_u=" in out


def test_markdown_report(study_result, tmp_path):
    text = render_markdown(study_result)
    assert text.startswith("# Panel regression report")
    assert "## Hausman test" in text
    assert "## Model comparison" in text
    path = write_markdown_report(study_result, str(tmp_path / "out"))
    assert path.exists()
    assert path.read_text() == text


def test_plots(study_result, tmp_path):
    models = study_result.models()
    fig, ax, info = plot_coefficients(models, save=str(tmp_path / "coefs.png"), show=False)
    assert info["terms"] == ["x1", "w", "z"]
    assert (tmp_path / "coefs.png").exists()
    fig, ax, info = plot_se_comparison(study_result.corrections, show=False)
    assert isinstance(info["se"], pd.DataFrame)
    assert list(info["se"].columns) == list(study_result.corrections)
    assert ax.get_title() == "Standard errors by covariance estimator"


def test_saved_figures_are_closed(study_result, tmp_path):
    plt.close("all")
    for i in range(3):
        fig, _, _ = plot_se_comparison(
            study_result.corrections, save=str(tmp_path / f"se_{i}.png"), show=False
        )
        assert not plt.fignum_exists(fig.number)
    assert plt.get_fignums() == []
    assert (tmp_path / "se_2.png").exists()
