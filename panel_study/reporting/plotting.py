from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

import os
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt


# ================================
# Theme + Figure Finalizer
# ================================

@dataclass
class PlotTheme:
    """Global plotting theme used by FigFinalizer.
    Plotting functions draw artists only; titles, labels, grid and legend
    are applied here.
    """
    figsize: Tuple[float, float] = (10.0, 6.0)
    dpi: int = 120

    # Fonts / sizing
    title_size: int = 18
    label_size: int = 14
    tick_size: int = 11
    legend_size: int = 11

    # Lines / grid
    grid: bool = True
    grid_style: str = "--"
    grid_alpha: float = 0.3

    # Reference line at zero (coefficient plots)
    zero_line: bool = True

    # Layout
    tight_layout: bool = True
    constrained_layout: bool = False

    # Colors
    palette: Sequence[str] = field(default_factory=lambda: [
        "#2563eb",  # blue
        "#10b981",  # emerald
        "#f59e0b",  # amber
        "#ef4444",  # red
        "#8b5cf6",  # violet
        "#14b8a6",  # teal
        "#84cc16",  # lime
    ])


class FigFinalizer:
    """Decorator-like wrapper that centralizes figure creation, styling and saving.

    Usage:
        FIG = FigFinalizer()

        @FIG(title="Coefficients")
        def plot_something(data, ax, palette):
            ax.plot(data["x"], data["y"], color=palette[0])
            return {}

        fig, ax, info = plot_something(df, save="coefs.png", show=False)
    """
    def __init__(self, theme: Optional[PlotTheme] = None, default_save_dir: Optional[str] = None, show_default: bool = True):
        self.theme = theme or PlotTheme()
        self.default_save_dir = default_save_dir
        self.show_default = show_default

    def new_figure(
        self,
        nrows: int = 1,
        ncols: int = 1,
        figsize: Optional[Tuple[float, float]] = None,
        sharex: bool = False,
        sharey: bool = False,
        squeeze: bool = True,
    ) -> Tuple[plt.Figure, Union[plt.Axes, np.ndarray]]:
        fig = plt.figure(figsize=figsize or self.theme.figsize, dpi=self.theme.dpi, constrained_layout=self.theme.constrained_layout)
        axes = fig.subplots(nrows=nrows, ncols=ncols, sharex=sharex, sharey=sharey, squeeze=squeeze)
        return fig, axes

    def _apply_axes_style(self, ax: plt.Axes, *, title: Optional[str], xlabel: Optional[str], ylabel: Optional[str], legend: Union[bool, str], legend_loc: str, zero_line: Optional[bool] = None):
        if title is not None:
            ax.set_title(title, fontsize=self.theme.title_size)
        if xlabel is not None:
            ax.set_xlabel(xlabel, fontsize=self.theme.label_size)
        if ylabel is not None:
            ax.set_ylabel(ylabel, fontsize=self.theme.label_size)

        if self.theme.grid:
            ax.grid(True, axis="y", linestyle=self.theme.grid_style, alpha=self.theme.grid_alpha)

        if self.theme.zero_line if zero_line is None else zero_line:
            ax.axhline(0.0, color="0.25", linewidth=1, linestyle="--", alpha=0.6, zorder=0)

        ax.tick_params(axis="both", labelsize=self.theme.tick_size)

        if legend:
            handles, labels = ax.get_legend_handles_labels()
            if labels:
                ax.legend(handles, labels, loc=legend_loc, fontsize=self.theme.legend_size, frameon=False)

    def finalize(
        self,
        fig: plt.Figure,
        axes: Union[plt.Axes, Iterable[plt.Axes]],
        *,
        suptitle: Optional[str] = None,
        save: Optional[str] = None,
        show: Optional[bool] = None,
        tight_layout: Optional[bool] = None,
        close: bool = True,
    ) -> plt.Figure:
        """Lay out, save and show ``fig``; a figure that is not shown is closed."""
        if tight_layout if tight_layout is not None else self.theme.tight_layout:
            fig.tight_layout()

        if suptitle:
            fig.suptitle(suptitle, fontsize=self.theme.title_size, y=1.02)

        if save:
            path = save
            if self.default_save_dir and not os.path.isabs(save):
                os.makedirs(self.default_save_dir, exist_ok=True)
                path = os.path.join(self.default_save_dir, save)
            else:
                parent = os.path.dirname(path)
                if parent:
                    os.makedirs(parent, exist_ok=True)
            fig.savefig(path, dpi=self.theme.dpi, bbox_inches="tight")

        if show if show is not None else self.show_default:
            plt.show()
        elif close:
            # saved-only figures are released
            plt.close(fig)

        return fig

    def __call__(self, **preset_style):
        """Return a decorator that wraps a plotting function.

        The wrapped function receives ``ax`` and ``palette`` keywords and only
        draws artists.
        """
        def decorator(plot_func: Callable[..., Dict[str, Any]]):
            def wrapper(
                *args,
                title: Optional[str] = None,
                xlabel: Optional[str] = None,
                ylabel: Optional[str] = None,
                legend: Union[bool, str] = "auto",
                legend_loc: str = "best",
                save: Optional[str] = None,
                show: Optional[bool] = None,
                ax: Optional[plt.Axes] = None,
                figsize: Optional[Tuple[float, float]] = None,
                palette: Optional[Sequence[str]] = None,
                **kwargs,
            ) -> Tuple[plt.Figure, plt.Axes, Dict[str, Any]]:
                created = False
                if ax is None:
                    fig, ax = self.new_figure(figsize=figsize)[0:2]
                    created = True
                else:
                    fig = ax.get_figure()

                # Call-site values override the preset only when given
                style = dict(preset_style)
                for key, val in dict(title=title, xlabel=xlabel, ylabel=ylabel).items():
                    if val is not None:
                        style[key] = val
                style.setdefault("title", None)
                style.setdefault("xlabel", None)
                style.setdefault("ylabel", None)
                style.update(legend=legend, legend_loc=legend_loc)

                out = plot_func(*args, ax=ax, palette=(palette or self.theme.palette), **kwargs) or {}

                self._apply_axes_style(ax, **style)

                if created:
                    self.finalize(fig, ax, save=save, show=show)

                return fig, ax, out
            return wrapper
        return decorator


# Global instance used by plotting helpers below
FIG = FigFinalizer()


# ================================
# Data drawing functions
# ================================

def _terms(models: Mapping[str, Any], include_const: bool) -> list:
    seen: list = []
    for res in models.values():
        for term in res.params.index:
            if (include_const or term != "const") and term not in seen:
                seen.append(term)
    return seen


@FIG(title="Coefficients across models", xlabel=None, ylabel="Estimate")
def plot_coefficients(
    models: Mapping[str, Any],
    ax: plt.Axes,
    palette: Sequence[str],
    alpha: float = 0.05,
    include_const: bool = False,
    marker: str = "o",
) -> Dict[str, Any]:
    """Point estimates with (1 - alpha) confidence intervals, dodged by model."""
    terms = _terms(models, include_const)
    k = max(len(models), 1)
    width = 0.8 / k
    x = np.arange(len(terms), dtype=float)

    for j, (label, res) in enumerate(models.items()):
        tbl = res.table(alpha)
        pos, est, lo, hi = [], [], [], []
        for i, term in enumerate(terms):
            if term not in tbl.index:
                continue
            pos.append(x[i] - 0.4 + width * (j + 0.5))
            est.append(tbl.at[term, "coef"])
            lo.append(tbl.at[term, "lo"])
            hi.append(tbl.at[term, "hi"])
        est_a = np.asarray(est, dtype=float)
        yerr = np.vstack([est_a - np.asarray(lo, dtype=float), np.asarray(hi, dtype=float) - est_a]) if est else None
        ax.errorbar(pos, est_a, yerr=yerr, fmt=marker, color=palette[j % len(palette)],
                    capsize=3, linewidth=1.5, label=label)

    ax.set_xticks(x)
    ax.set_xticklabels(terms, rotation=20, ha="right")
    return {"terms": terms, "models": list(models)}


@FIG(title="Standard errors by covariance estimator", xlabel=None, ylabel="Std. error")
def plot_se_comparison(
    corrections: Mapping[str, Any],
    ax: plt.Axes,
    palette: Sequence[str],
    include_const: bool = False,
) -> Dict[str, Any]:
    """Grouped bars: one group per coefficient, one bar per covariance label."""
    se = pd.DataFrame({label: res.std_errors for label, res in corrections.items()})
    if not include_const:
        se = se.drop(index="const", errors="ignore")

    k = max(se.shape[1], 1)
    width = 0.8 / k
    x = np.arange(len(se.index), dtype=float)
    for j, label in enumerate(se.columns):
        ax.bar(x - 0.4 + width * (j + 0.5), se[label].to_numpy(float), width=width,
               color=palette[j % len(palette)], alpha=0.85, label=label)

    ax.set_xticks(x)
    ax.set_xticklabels(list(se.index), rotation=20, ha="right")
    return {"se": se}
