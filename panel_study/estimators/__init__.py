"""Public API for the estimators subpackage.

Each module exposes one ``estimate_*`` function taking a
:class:`~panel_study.helpers.preparation.PanelData` and a
:class:`~panel_study.helpers.config.StudyConfig` and returning a
:class:`~panel_study.estimators.base.PanelModelResult`.
"""
