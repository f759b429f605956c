import numpy as np
import pandas as pd
import pytest

from panel_study.helpers.config import StudyConfig
from panel_study.helpers.preparation import PanelData, demean, load_table


def test_config_rejects_unknown_options():
    with pytest.raises(ValueError):
        StudyConfig(random_methods=["swar", "bogus"])
    with pytest.raises(ValueError):
        StudyConfig(cluster_by=["region"])
    with pytest.raises(ValueError):
        StudyConfig(entity_col="year", time_col="year")
    with pytest.raises(ValueError):
        StudyConfig(alpha=1.5)


def test_config_copy_is_independent(balanced_cfg):
    cfg2 = balanced_cfg.copy()
    cfg2.regressors.append("extra")
    assert "extra" not in balanced_cfg.regressors
    assert cfg2.df is balanced_cfg.df


def test_model_and_sample_vars_deduplicate(config_factory, iv_df):
    cfg = config_factory(iv_df, regressors=["x1", "w"], endog=["w"], instruments=["q1", "q2"])
    assert cfg.model_vars == ["x1", "w"]
    assert cfg.sample_vars == ["y", "x1", "w", "q1", "q2"]


def test_describe_balanced(balanced_panel):
    dims = balanced_panel.describe()
    assert dims == {
        "n": 80, "T": 6, "N": 480, "Ti_min": 6, "Ti_mean": 6.0, "Ti_max": 6, "balanced": True,
    }
    assert balanced_panel.is_balanced


def test_describe_unbalanced(unbalanced_panel):
    dims = unbalanced_panel.describe()
    assert not dims["balanced"]
    assert dims["Ti_min"] >= 2
    assert dims["N"] < 480


def test_missing_columns_raise(config_factory, balanced_df):
    with pytest.raises(ValueError, match="not found"):
        PanelData(config_factory(balanced_df, regressors=["x1", "nope"]))


def test_duplicate_pairs_raise(config_factory, balanced_df):
    df = pd.concat([balanced_df, balanced_df.iloc[[0]]], ignore_index=True)
    with pytest.raises(ValueError, match="not unique"):
        PanelData(config_factory(df))


def test_missing_index_raises(config_factory, balanced_df):
    df = balanced_df.copy()
    df.loc[3, "id"] = np.nan
    with pytest.raises(ValueError, match="missing"):
        PanelData(config_factory(df))


def test_listwise_deletion_and_derived(config_factory, balanced_df):
    df = balanced_df.copy()
    df.loc[[0, 5, 10], "x2"] = np.nan
    cfg = config_factory(df, derived={"x1sq": "x1 ** 2"}, regressors=["x1", "x1sq", "x2"])
    panel = PanelData(cfg)
    assert panel.info["rows_dropped"] == 3
    assert len(panel.panel) == 477
    np.testing.assert_allclose(panel.panel["x1sq"], panel.panel["x1"] ** 2)
    # only index + model columns are kept
    assert list(panel.panel.columns) == ["id", "year", "y", "x1", "x1sq", "x2"]


def test_non_numeric_values_raise(config_factory, balanced_df):
    df = balanced_df.copy()
    df["x2"] = df["x2"].astype(object)
    df.loc[df.index[:100], "x2"] = "n/a"
    with pytest.raises(ValueError, match="x2"):
        PanelData(config_factory(df))


def test_numeric_strings_with_missing_still_load(config_factory, balanced_df):
    df = balanced_df.copy()
    df["x2"] = df["x2"].astype(str)
    df.loc[[0, 1], "x2"] = None
    panel = PanelData(config_factory(df))
    assert panel.info["rows_dropped"] == 2


def test_source_or_df_required():
    with pytest.raises(ValueError):
        PanelData(StudyConfig(df=None, source=None))


def test_first_difference_respects_gaps(config_factory):
    df = pd.DataFrame(
        {
            "id": [1, 1, 1, 2, 2, 2, 2],
            "year": [1, 2, 4, 1, 2, 3, 4],
            "y": [1.0, 3.0, 10.0, 2.0, 2.5, 4.0, 4.0],
            "x1": [0.0, 1.0, 2.0, 1.0, 1.0, 2.0, 4.0],
        }
    )
    panel = PanelData(config_factory(df, regressors=["x1"]))
    d = panel.first_difference(["y", "x1"])
    # entity 1: year 4 follows year 2 -> gap -> missing
    assert np.isnan(d["y"].iloc[0])
    assert d["y"].iloc[1] == pytest.approx(2.0)
    assert np.isnan(d["y"].iloc[2])
    # entity 2 is consecutive
    np.testing.assert_allclose(d["x1"].iloc[4:].to_numpy(), [0.0, 1.0, 2.0])
    lag = panel.lag(["y"])
    assert np.isnan(lag["y"].iloc[3])
    assert lag["y"].iloc[6] == pytest.approx(4.0)


def test_within_transform_has_zero_entity_means(unbalanced_panel):
    dm = unbalanced_panel.within_transform(["y", "x1"], "individual")
    means = dm.groupby(unbalanced_panel.entity).mean()
    np.testing.assert_allclose(means.to_numpy(), 0.0, atol=1e-10)


def test_twoway_demeaning_iterative_matches_closed_form(balanced_panel):
    data = balanced_panel.panel[["y", "x1"]]
    closed = demean(data, balanced_panel.entity, balanced_panel.time, "twoways", balanced=True)
    iterative = demean(data, balanced_panel.entity, balanced_panel.time, "twoways", balanced=False)
    np.testing.assert_allclose(closed.to_numpy(), iterative.to_numpy(), atol=1e-8)


def test_twoway_demeaning_unbalanced_removes_both_means(unbalanced_panel):
    dm = unbalanced_panel.within_transform(["x1"], "twoways")
    by_entity = dm.groupby(unbalanced_panel.entity).mean()
    by_time = dm.groupby(unbalanced_panel.time).mean()
    np.testing.assert_allclose(by_entity.to_numpy(), 0.0, atol=1e-8)
    np.testing.assert_allclose(by_time.to_numpy(), 0.0, atol=1e-8)


def test_demean_needs_time_labels(balanced_panel):
    with pytest.raises(ValueError):
        demean(balanced_panel.panel[["y"]], balanced_panel.entity, None, "time")


def test_varying_columns_drop_time_invariant(balanced_panel):
    assert balanced_panel.varying_columns(["x1", "x2", "z"], "individual") == ["x1", "x2"]
    assert balanced_panel.varying_columns(["x1", "z"], "time") == ["x1", "z"]


def test_load_table_csv_and_unsupported(tmp_path, balanced_df):
    path = tmp_path / "panel.csv"
    balanced_df.to_csv(path, index=False)
    back = load_table(path)
    assert back.shape == balanced_df.shape
    with pytest.raises(ValueError, match="Unsupported"):
        load_table(tmp_path / "panel.xlsx")
