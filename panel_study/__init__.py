"""
The :mod:`panel_study` package estimates the standard linear panel-data
models on an entity x time panel and compares their estimates, standard
errors and specification tests side by side, the way a Stata ``xtreg``
or R ``plm`` session would.

The package exposes three core classes:

``PanelData``
    Builds the estimation sample from a DataFrame, a local file or a URL:
    derived columns, listwise deletion over the model variables, index
    validation, and the within / between / first-difference
    transformations.  See :class:`panel_study.helpers.preparation.PanelData`.

``PanelEstimator``
    Pooled OLS, fixed effects (within and LSDV; entity, time or two-way),
    between, random effects (Swamy-Arora, Wallace-Hussain, Amemiya,
    Nerlove), first differences and 2SLS.  Every fit returns a
    :class:`panel_study.estimators.base.PanelModelResult` carrying its
    coefficients, covariance and the equivalent Stata and R commands.

``PanelStudy``
    Orchestrator that runs the whole pipeline: estimators, Hausman test,
    cluster-robust and panel-corrected standard errors and an optional
    cross-check against R ``plm``.  See :meth:`panel_study.study.PanelStudy.run`.

References
----------
* Baltagi, *Econometric Analysis of Panel Data*: variance-components
  estimators for the random-effects model.
* Wooldridge, *Econometric Analysis of Cross Section and Panel Data*:
  within, first-difference and the regression-based Hausman test.
* Cameron, Gelbach and Miller (2011): two-way cluster-robust inference.
* Beck and Katz (1995): panel-corrected standard errors.
"""
