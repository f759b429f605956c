"""CLI helper to run the panel study on one or more datasets.

Each input can be a local ``.dta``/``.csv``/``.parquet`` file or an http(s)
URL (downloaded once into the cache directory).  The defaults reproduce the
classic ``nlswork`` wage regression::

    python run_study.py https://www.stata-press.com/data/r18/nlswork.dta \
        --derived "age2=age**2" --regressors age age2 ttl_exp tenure not_smsa south \
        --random-methods swar amemiya --cluster-by entity twoway \
        --artifact-dir artifacts/nlswork

For every dataset it builds a ``StudyConfig``, runs ``PanelStudy``, prints the
summary and writes ``<name>_report.md`` plus the figures to the artifact
directory.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

from panel_study.helpers.config import (
    CLUSTER_ADJUSTMENTS,
    CLUSTER_BY,
    COV_TYPES,
    EFFECTS,
    IV_MODELS,
    RANDOM_METHODS,
    StudyConfig,
)
from panel_study.reporting.plotting import plot_coefficients, plot_se_comparison
from panel_study.reporting.summary import print_study_summary, write_markdown_report
from panel_study.study import PanelStudy


def _parse_derived(items: Optional[List[str]]) -> Optional[Dict[str, str]]:
    if not items:
        return None
    out: Dict[str, str] = {}
    for item in items:
        name, sep, expr = item.partition("=")
        if not sep or not name.strip() or not expr.strip():
            raise argparse.ArgumentTypeError(f"--derived expects NAME=EXPR, got '{item}'")
        out[name.strip()] = expr.strip()
    return out


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the panel regression study")
    parser.add_argument(
        "data",
        type=str,
        nargs="+",
        help="One or more paths or http(s) URLs of panel datasets (.dta, .csv, .parquet)",
    )
    parser.add_argument("--entity", type=str, default="idcode", help="Entity identifier column")
    parser.add_argument("--time", type=str, default="year", help="Time period column")
    parser.add_argument("--outcome", type=str, default="ln_wage", help="Dependent variable")
    parser.add_argument(
        "--regressors",
        nargs="+",
        default=["age", "ttl_exp", "tenure", "not_smsa", "south"],
        help="Explanatory variables",
    )
    parser.add_argument(
        "--derived",
        nargs="*",
        default=None,
        help="Derived columns as NAME=EXPR (pandas eval syntax), e.g. age2=age**2",
    )
    parser.add_argument("--endog", nargs="*", default=None, help="Endogenous regressors (IV)")
    parser.add_argument("--instruments", nargs="*", default=None, help="Excluded instruments (IV)")
    parser.add_argument("--iv-model", choices=IV_MODELS, default="within", help="IV transformation")
    parser.add_argument(
        "--effects",
        nargs="+",
        choices=EFFECTS,
        default=["individual"],
        help="Fixed effects to absorb in the within/LSDV models",
    )
    parser.add_argument(
        "--random-methods",
        nargs="+",
        choices=RANDOM_METHODS,
        default=["swar"],
        help="Variance-components estimators for random effects",
    )
    parser.add_argument("--no-fd-intercept", action="store_true", help="Fit first differences without a constant")
    parser.add_argument("--cov-type", choices=COV_TYPES, default="unadjusted", help="Covariance attached at fit time")
    parser.add_argument(
        "--cluster-by",
        nargs="+",
        choices=CLUSTER_BY,
        default=["entity"],
        help="Clustering dimensions for the within-model corrections",
    )
    parser.add_argument(
        "--cluster-adjustment",
        choices=CLUSTER_ADJUSTMENTS,
        default="stata",
        help="Small-sample factor for cluster-robust covariances",
    )
    parser.add_argument("--no-pcse", action="store_true", help="Skip panel-corrected standard errors")
    parser.add_argument("--pcse-casewise", action="store_true", help="Estimate PCSE on complete periods only")
    parser.add_argument("--no-hausman-aux", action="store_true", help="Skip the regression-based Hausman test")
    parser.add_argument("--alpha", type=float, default=0.05, help="Significance level")
    parser.add_argument("--r-bridge", action="store_true", help="Cross-check coefficients against R plm (needs rpy2)")
    parser.add_argument("--cache-dir", type=str, default=None, help="Download cache for remote datasets")
    parser.add_argument(
        "--artifact-dir",
        type=str,
        default=None,
        help="Directory for the markdown report and figures (nothing is written when omitted)",
    )
    parser.add_argument("--quiet", action="store_true", help="Silence progress logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, source: str) -> StudyConfig:
    return StudyConfig(
        source=source,
        cache_dir=args.cache_dir,
        entity_col=args.entity,
        time_col=args.time,
        outcome=args.outcome,
        regressors=list(args.regressors),
        derived=_parse_derived(args.derived),
        effects=list(args.effects),
        random_methods=list(args.random_methods),
        fd_intercept=not args.no_fd_intercept,
        endog=args.endog or None,
        instruments=args.instruments or None,
        iv_model=args.iv_model,
        cov_type=args.cov_type,
        cluster_by=list(args.cluster_by),
        cluster_adjustment=args.cluster_adjustment,
        pcse=not args.no_pcse,
        pcse_pairwise=not args.pcse_casewise,
        hausman_aux=not args.no_hausman_aux,
        alpha=args.alpha,
        artifact_dir=args.artifact_dir,
        verbose=not args.quiet,
        r_bridge=args.r_bridge,
    )


def _dataset_stem(source: str) -> str:
    return Path(urlparse(source).path).stem or "dataset"


def run_one(args: argparse.Namespace, source: str) -> Optional[Path]:
    cfg = build_config(args, source)
    result = PanelStudy(cfg).run()
    print_study_summary(result)

    if not cfg.artifact_dir:
        return None
    stem = _dataset_stem(source)
    out_dir = Path(cfg.artifact_dir)
    plot_coefficients(result.models(), alpha=cfg.alpha, save=str(out_dir / f"{stem}_coefficients.png"), show=False)
    if result.corrections:
        plot_se_comparison(result.corrections, save=str(out_dir / f"{stem}_se_comparison.png"), show=False)
    path = write_markdown_report(result, str(out_dir), filename=f"{stem}_report.md")
    print(f"Report written to {path}")
    return path


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    # Each dataset gets its own study; the model options apply to all of them
    for source in args.data:
        run_one(args, source)


if __name__ == "__main__":
    main()
