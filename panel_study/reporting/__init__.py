"""Reporting utilities for the ``panel_study`` package.

:mod:`panel_study.reporting.summary` prints the console summary of a
study (panel block, one block per model, the comparison table, the
standard-error corrections and the Hausman test) and writes the markdown
report.  :mod:`panel_study.reporting.plotting` draws the coefficient plot
and the standard-error comparison chart with a shared matplotlib theme.

Example::

    from panel_study.reporting.summary import print_study_summary
    from panel_study.reporting.plotting import plot_coefficients

"""
