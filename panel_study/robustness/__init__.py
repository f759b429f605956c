"""
Inference and specification checks for fitted panel models.

* :mod:`panel_study.robustness.vcov` replaces the covariance of a fitted
  model with cluster-robust (entity, time or two-way), heteroskedasticity
  robust or Beck-Katz panel-corrected estimates.
* :mod:`panel_study.robustness.hausman` implements the fixed vs random
  effects Hausman test, both the classical contrast and the
  regression-based (Mundlak) variant.
* :mod:`panel_study.robustness.r_interface` refits the models with R's
  ``plm`` through ``rpy2`` and compares the coefficients.

Example::

    from panel_study.robustness.vcov import cluster_vcov, with_vcov
    V = cluster_vcov(fe, by="twoway")
    fe_cl = with_vcov(fe, V, "cluster-twoway")
    print(fe_cl.table())

"""
