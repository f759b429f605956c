# summary.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd

# ================================
# Formatting helpers
# ================================

def _fmt_p(p: Optional[float]) -> str:
    if p is None or (isinstance(p, float) and (np.isnan(p) or np.isinf(p))):
        return "NA"
    return f"{p:.3f}" if p >= 0.001 else "<0.001"

def _stars(p: Optional[float]) -> str:
    if p is None or not np.isfinite(p):
        return ""
    if p < 0.001:
        return "***"
    if p < 0.01:
        return "**"
    if p < 0.05:
        return "*"
    return ""

def _fmt_p_with_stars(p: Optional[float]) -> str:
    """Format p-value with asterisks for significance."""
    if p is None or (isinstance(p, float) and (np.isnan(p) or np.isinf(p))):
        return "NA"
    return f"{_fmt_p(p)}{_stars(p)}"

def _fmt_num(x: Any, digits: int = 4) -> str:
    if x is None or (isinstance(x, float) and not np.isfinite(x)):
        return "NA"
    if isinstance(x, (int, np.integer)):
        return str(int(x))
    return f"{float(x):.{digits}f}"

def _rule(title: str | None = None) -> None:
    line = "=" * 78
    if title:
        print(f"\n{line}\n{title}\n{line}")
    else:
        print(f"\n{line}")


# ================================
# Tables
# ================================

def coefficient_frame(result: Any, alpha: float = 0.05) -> pd.DataFrame:
    """``coeftest``-style table with a formatted, starred p-value column."""
    tbl = result.table(alpha).copy()
    stat_name = "t" if result.df_resid is not None else "z"
    tbl = tbl.rename(columns={"coef": "Estimate", "se": "Std. Error", "stat": f"{stat_name} value"})
    tbl["Pr(>|.|)"] = [_fmt_p_with_stars(p) for p in tbl.pop("p")]
    lvl = int(round(100 * (1 - alpha)))
    tbl = tbl.rename(columns={"lo": f"[{lvl}% lo", "hi": f"{lvl}% hi]"})
    return tbl


def comparison_table(models: Mapping[str, Any], digits: int = 4) -> pd.DataFrame:
    """Side-by-side coefficients with standard errors in parentheses.

    Rows are terms (each followed by its SE row); the trailing rows hold
    the number of observations, entities and R-squared.
    """
    terms: list = []
    for res in models.values():
        for term in res.params.index:
            if term not in terms:
                terms.append(term)
    # constant last, as esttab prints it
    if "const" in terms:
        terms.remove("const")
        terms.append("const")

    index: list = []
    for term in terms:
        index.extend([term, ""])
    index.extend(["N", "entities", "R2"])

    cols: Dict[str, list] = {}
    for label, res in models.items():
        col: list = []
        pvals = res.pvalues
        for term in terms:
            if term in res.params.index:
                col.append(f"{res.params[term]:.{digits}f}{_stars(pvals[term])}")
                col.append(f"({res.std_errors[term]:.{digits}f})")
            else:
                col.extend(["", ""])
        col.append(str(res.nobs))
        col.append(str(res.n_entities) if res.n_entities is not None else "")
        col.append(_fmt_num(res.rsquared, digits))
        cols[label] = col
    return pd.DataFrame(cols, index=index)


def se_comparison_table(corrections: Mapping[str, Any], digits: int = 4) -> pd.DataFrame:
    """Standard errors of one model under each covariance estimator."""
    se = pd.DataFrame({label: res.std_errors for label, res in corrections.items()})
    return se.round(digits)


# ================================
# Print blocks
# ================================

def print_panel_block(dims: Dict[str, Any], info: Optional[Dict[str, Any]] = None) -> None:
    _rule("PANEL")
    kind = "balanced" if dims.get("balanced") else "unbalanced"
    print(f"Entities n={dims.get('n')} | Periods T={dims.get('T')} | Obs N={dims.get('N')} ({kind})")
    print(f"Obs per entity: min={dims.get('Ti_min')} mean={_fmt_num(dims.get('Ti_mean'), 2)} max={dims.get('Ti_max')}")
    if info:
        print(f"Rows read: {info.get('rows_raw')} | dropped listwise: {info.get('rows_dropped')}")


def print_model_block(result: Any, alpha: float = 0.05) -> None:
    _rule(f"{result.name}  [{result.cov_label}]")
    with pd.option_context("display.max_rows", 100, "display.width", 120):
        print(coefficient_frame(result, alpha).to_string(float_format=lambda v: f"{v:.4f}"))

    diag = [f"N={result.nobs}"]
    if result.n_entities is not None:
        diag.append(f"entities={result.n_entities}")
    if result.df_resid is not None:
        diag.append(f"df_resid={result.df_resid:.0f}")
    for name, val in (
        ("R2", result.rsquared),
        ("R2 within", result.rsquared_within),
        ("R2 between", result.rsquared_between),
        ("R2 overall", result.rsquared_overall),
    ):
        if np.isfinite(val):
            diag.append(f"{name}={val:.4f}")
    print(" | ".join(diag))

    ex = result.extra
    if result.kind == "random":
        theta = ex.get("theta")
        theta_txt = _fmt_num(theta) if not isinstance(theta, dict) else (
            f"min {theta['min']:.4f}, median {theta['median']:.4f}, max {theta['max']:.4f}"
        )
        print(f"sigma_u={ex['sigma_u']:.4f} sigma_e={ex['sigma_e']:.4f} rho={ex['rho']:.4f} theta={theta_txt}")
    if ex.get("dropped"):
        print(f"Omitted: {', '.join(ex['dropped'])}")
    if ex.get("first_stage_f"):
        fs = ", ".join(f"{k}: F={v:.2f}" for k, v in ex["first_stage_f"].items())
        print(f"First stage: {fs}")

    print(f"Stata: {result.stata_cmd}")
    print(f"R:     {result.r_cmd}")


def print_corrections_block(corrections: Mapping[str, Any]) -> None:
    _rule("Standard-error corrections")
    if not corrections:
        print("(not computed)")
        return
    first = next(iter(corrections.values()))
    print(f"Model: {first.name}")
    print(se_comparison_table(corrections).to_string())
    for label, res in corrections.items():
        print(f"  {label:<16} Stata: {res.stata_cmd}")
        print(f"  {'':<16} R:     {res.r_cmd}")


def print_hausman_block(h: Any, aux: Any = None) -> None:
    _rule("Hausman test (FE vs RE)")
    if h is None:
        print("(not computed)")
        return
    for res in (h, aux):
        if res is None:
            continue
        print(
            f"{res.method:<10} chi2({res.df}) = {res.stat:.4f}, p = {_fmt_p_with_stars(res.p_value)} "
            f"-> {res.recommendation}"
        )
        print(f"{'':<10} tested: {', '.join(res.tested)}")
        if res.non_psd:
            print(f"{'':<10} note: V_FE - V_RE not positive definite (generalized inverse used)")
        print(f"{'':<10} Stata: {res.commands.get('stata', '')}")
        print(f"{'':<10} R:     {res.commands.get('r', '')}")


def print_r_check_block(r_check: Optional[pd.DataFrame]) -> None:
    _rule("Cross-check against R plm")
    if r_check is None or r_check.empty:
        print("(not run)")
        return
    worst = r_check.groupby("model")["abs_diff"].max()
    with pd.option_context("display.max_rows", 100, "display.width", 120):
        print(worst.to_frame("max |diff|").to_string())


def print_study_summary(result: Any, *, show_models: bool = True) -> None:
    """Print every block of a :class:`~panel_study.study.PanelStudyResult`."""
    alpha = result.config.alpha
    print_panel_block(result.dims, getattr(result.data, "info", None))
    models = result.models()
    if show_models:
        for res in models.values():
            print_model_block(res, alpha)

    _rule("Model comparison")
    if models:
        with pd.option_context("display.max_rows", 200, "display.width", 160):
            print(comparison_table(models).to_string())
        print("* p<0.05, ** p<0.01, *** p<0.001; standard errors in parentheses")
    else:
        print("(no models)")

    print_corrections_block(result.corrections)
    print_hausman_block(result.hausman, result.hausman_aux)
    if result.r_check is not None:
        print_r_check_block(result.r_check)


# ================================
# Markdown report
# ================================

def render_markdown(result: Any) -> str:
    cfg = result.config
    dims = result.dims
    lines = []
    lines.append("# Panel regression report")
    lines.append(
        f"\nOutcome `{cfg.outcome}` on {', '.join(f'`{r}`' for r in cfg.model_vars)}; "
        f"panel indexed by `{cfg.entity_col}` x `{cfg.time_col}`."
    )

    lines.append("\n## Panel")
    kind = "balanced" if dims.get("balanced") else "unbalanced"
    lines.append(
        f"- entities n = {dims.get('n')}, periods T = {dims.get('T')}, observations N = {dims.get('N')} ({kind})"
    )
    lines.append(
        f"- observations per entity: min {dims.get('Ti_min')}, mean {_fmt_num(dims.get('Ti_mean'), 2)}, max {dims.get('Ti_max')}"
    )
    info = getattr(result.data, "info", {}) or {}
    if info.get("rows_dropped"):
        lines.append(f"- rows dropped listwise: {info['rows_dropped']}")

    models = result.models()
    if models:
        lines.append("\n## Model comparison")
        lines.append(comparison_table(models).to_markdown())
        lines.append("\n\\* p<0.05, \\*\\* p<0.01, \\*\\*\\* p<0.001; standard errors in parentheses.")

        lines.append("\n## Models")
        for res in models.values():
            lines.append(f"\n### {res.name}")
            lines.append(coefficient_frame(res, cfg.alpha).to_markdown(floatfmt=".4f"))
            lines.append(f"\n- Stata: `{res.stata_cmd}`")
            lines.append(f"- R: `{res.r_cmd}`")
            if res.kind == "random":
                ex = res.extra
                lines.append(f"- sigma_u = {ex['sigma_u']:.4f}, sigma_e = {ex['sigma_e']:.4f}, rho = {ex['rho']:.4f}")

    if result.corrections:
        first = next(iter(result.corrections.values()))
        lines.append(f"\n## Standard-error corrections ({first.name})")
        lines.append(se_comparison_table(result.corrections).to_markdown())
        for label, res in result.corrections.items():
            lines.append(f"- {label}: Stata `{res.stata_cmd}`; R `{res.r_cmd}`")

    if result.hausman is not None:
        lines.append("\n## Hausman test")
        for h in (result.hausman, result.hausman_aux):
            if h is None:
                continue
            note = " (generalized inverse; difference not positive definite)" if h.non_psd else ""
            lines.append(
                f"- {h.method}: chi2({h.df}) = {h.stat:.4f}, p = {_fmt_p(h.p_value)}{note} -> {h.recommendation}"
            )

    if result.r_check is not None and not result.r_check.empty:
        lines.append("\n## Cross-check against R plm")
        lines.append(result.r_check.to_markdown(index=False, floatfmt=".6g"))

    return "\n".join(lines) + "\n"


def write_markdown_report(result: Any, out_dir: str, filename: str = "panel_report.md") -> Path:
    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    path = out_path / filename
    path.write_text(render_markdown(result))
    return path
