# panel_study/robustness/r_interface.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..helpers.commands import r_model_call, r_setup
from ..helpers.config import StudyConfig
from ..helpers.preparation import PanelData


def _load_rpy2():
    """Import rpy2 lazily so the package can be imported without R installed."""
    try:
        import rpy2.robjects as ro
        from rpy2.robjects import pandas2ri
        from rpy2.robjects.conversion import localconverter
        from rpy2.robjects.packages import importr
    except ImportError as exc:
        raise RuntimeError(
            "The R cross-check needs rpy2 (pip install 'panel-study[r]') and an R "
            "installation with the 'plm' package."
        ) from exc
    return ro, pandas2ri, localconverter, importr


def set_r_lib_paths(paths: Optional[Sequence[str]]) -> None:
    """Prepend extra library directories to R's ``.libPaths()``."""
    if not paths:
        return
    ro, _, _, _ = _load_rpy2()
    quoted = ", ".join(f"'{p}'" for p in paths)
    ro.r(f".libPaths(c({quoted}, .libPaths()))")


def push_panel(panel: PanelData, data_name: str = "df") -> None:
    """Copy the estimation sample into R and build ``pdata`` from it."""
    ro, pandas2ri, localconverter, importr = _load_rpy2()
    importr("plm")

    sub = panel.panel.copy()
    # Integer-coded index columns keep pdata.frame happy with any label type
    for c in (panel.entity_col, panel.time_col):
        if not np.issubdtype(sub[c].dtype, np.number):
            sub[c] = sub[c].astype("category").cat.codes

    with localconverter(ro.default_converter + pandas2ri.converter):
        ro.globalenv[data_name] = ro.conversion.py2rpy(sub)
    spec = {"entity": panel.entity_col, "time": panel.time_col}
    ro.r(r_setup(spec, data_name))


def r_coefficients(result) -> pd.Series:
    """Refit ``result``'s model with plm/lm in R and return its coefficients.

    :func:`push_panel` must have been called first.
    """
    ro, _, _, _ = _load_rpy2()
    call = r_model_call(result.kind, result.spec, result.effect)
    coefs = ro.r(f"coef({call})")
    names = [str(n) for n in coefs.names]
    out = pd.Series(np.asarray(coefs, dtype=float), index=names)
    return out.rename(index={"(Intercept)": "const"})


def cross_check_with_r(
    models: Dict[str, object],
    panel: PanelData,
    config: StudyConfig,
) -> pd.DataFrame:
    """Compare every model's coefficients with the R ``plm`` equivalent.

    Returns one row per (model, term) common to both fits with the absolute
    difference.  Models whose R refit fails are reported with ``r = NaN``.
    """
    ro, _, _, _ = _load_rpy2()
    set_r_lib_paths(config.r_lib_paths)
    push_panel(panel)

    rows: List[Dict[str, object]] = []
    for label, res in models.items():
        try:
            rc = r_coefficients(res)
        except ro.rinterface_lib.embedded.RRuntimeError as exc:
            if config.verbose:
                print(f"[R] {label}: refit failed ({str(exc).strip()})")
            rc = pd.Series(dtype=float)
        for term in res.params.index:
            if not rc.empty and term not in rc.index:
                continue
            r_val = float(rc[term]) if term in rc.index else np.nan
            py_val = float(res.params[term])
            rows.append(
                {
                    "model": label,
                    "term": term,
                    "python": py_val,
                    "r": r_val,
                    "abs_diff": abs(py_val - r_val),
                }
            )
    out = pd.DataFrame(rows, columns=["model", "term", "python", "r", "abs_diff"])
    if config.verbose and not out.empty:
        worst = out["abs_diff"].max()
        print(f"[R] cross-check on {out['model'].nunique()} models, max |diff| = {worst:.3g}")
    return out
