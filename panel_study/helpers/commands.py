"""Stata and R equivalents of each fitted model.

Every :class:`~panel_study.estimators.base.PanelModelResult` carries the
command a Stata user would type and the ``plm``/``lm`` call an R user would
write to obtain the same estimates.  The strings are built from the model
``kind``, its ``effect`` and a small ``spec`` dictionary holding the
variable names::

    spec = {
        "outcome": "ln_wage",
        "regressors": ["age", "tenure"],
        "endog": [], "instruments": [],
        "entity": "idcode", "time": "year",
        "random_method": "swar", "intercept": True,
    }

The R strings assume a ``pdata.frame`` called ``pdata`` (see
:func:`r_setup`); :mod:`panel_study.robustness.r_interface` evaluates them
verbatim when the R cross-check is enabled.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def _vars(spec: Dict[str, Any]) -> List[str]:
    return list(spec.get("regressors") or [])


def _exog(spec: Dict[str, Any]) -> List[str]:
    endog = set(spec.get("endog") or [])
    return [v for v in _vars(spec) if v not in endog]


# ================================
# Stata
# ================================

def stata_setup(spec: Dict[str, Any]) -> str:
    return f"xtset {spec['entity']} {spec['time']}"


def _stata_vce(cov_label: str, spec: Dict[str, Any]) -> Optional[str]:
    e, t = spec["entity"], spec["time"]
    return {
        "unadjusted": None,
        "robust": "vce(robust)",
        "cluster-entity": f"vce(cluster {e})",
        "cluster-time": f"vce(cluster {t})",
        "cluster-twoway": f"vce(cluster {e} {t})",
        "hc0": "vce(robust)",
        "hc1": "vce(robust)",
    }.get(cov_label)


def stata_command(kind: str, spec: Dict[str, Any], effect: Optional[str] = None,
                  cov_label: str = "unadjusted") -> str:
    y = spec["outcome"]
    x = " ".join(_vars(spec))
    e, t = spec["entity"], spec["time"]
    opts: List[str] = []

    if cov_label.startswith("pcse"):
        cmd = f"xtpcse {y} {x}"
        if kind in ("within", "lsdv"):
            cmd += f" i.{e}" if effect in (None, "individual", "twoways") else ""
            cmd += f" i.{t}" if effect in ("time", "twoways") else ""
        if cov_label == "pcse-pairwise":
            opts.append("pairwise")
        return cmd + (", " + " ".join(opts) if opts else "")

    if kind == "pooling":
        cmd = f"regress {y} {x}"
    elif kind == "within":
        if effect == "time":
            cmd = f"areg {y} {x}"
            opts.append(f"absorb({t})")
        else:
            cmd = f"xtreg {y} {x}" + (f" i.{t}" if effect == "twoways" else "")
            opts.append("fe")
    elif kind == "lsdv":
        cmd = f"areg {y} {x}" + (f" i.{t}" if effect == "twoways" else "")
        opts.append(f"absorb({t if effect == 'time' else e})")
    elif kind == "between":
        cmd = f"xtreg {y} {x}"
        opts.append("be")
    elif kind == "random":
        cmd = f"xtreg {y} {x}"
        opts.append("re")
    elif kind == "fd":
        dvars = " ".join(f"D.{v}" for v in _vars(spec))
        cmd = f"regress D.{y} {dvars}"
        if not spec.get("intercept", True):
            opts.append("noconstant")
    elif kind == "iv":
        endog = " ".join(spec.get("endog") or [])
        instr = " ".join(spec.get("instruments") or [])
        exog = " ".join(_exog(spec))
        body = f"{y} {exog} ({endog} = {instr})".replace("  ", " ")
        iv_model = spec.get("iv_model", "pooling")
        if iv_model == "pooling":
            cmd = f"ivregress 2sls {body}"
        else:
            cmd = f"xtivreg {body}"
            opts.append("fe" if iv_model == "within" else iv_model)
    else:
        raise ValueError(f"Unknown model kind '{kind}'")

    vce = _stata_vce(cov_label, spec)
    if vce:
        opts.append(vce)
    out = cmd + (", " + " ".join(opts) if opts else "")
    if kind == "random" and spec.get("random_method", "swar") != "swar":
        # Stata only ships Swamy-Arora
        out += f"  // no Stata equivalent for random.method = {spec['random_method']}"
    return out


# ================================
# R
# ================================

def r_setup(spec: Dict[str, Any], data_name: str = "df") -> str:
    return (
        f'pdata <- pdata.frame({data_name}, index = c("{spec["entity"]}", "{spec["time"]}"))'
    )


def r_formula(kind: str, spec: Dict[str, Any], effect: Optional[str] = None) -> str:
    y = spec["outcome"]
    rhs = " + ".join(_vars(spec)) or "1"
    if kind == "lsdv":
        fe = []
        if effect in (None, "individual", "twoways"):
            fe.append(f"factor({spec['entity']})")
        if effect in ("time", "twoways"):
            fe.append(f"factor({spec['time']})")
        rhs = " + ".join([rhs] + fe)
    if kind == "fd" and not spec.get("intercept", True):
        rhs += " - 1"
    if kind == "iv":
        instr = " + ".join(_exog(spec) + list(spec.get("instruments") or []))
        rhs = f"{rhs} | {instr}"
    return f"{y} ~ {rhs}"


def r_model_call(kind: str, spec: Dict[str, Any], effect: Optional[str] = None) -> str:
    fml = r_formula(kind, spec, effect)
    if kind == "lsdv":
        return f"lm({fml}, data = pdata)"
    model = {
        "pooling": "pooling",
        "within": "within",
        "between": "between",
        "random": "random",
        "fd": "fd",
        "iv": spec.get("iv_model", "pooling"),
    }.get(kind)
    if model is None:
        raise ValueError(f"Unknown model kind '{kind}'")
    args = [fml, "data = pdata", f'model = "{model}"']
    if kind == "within" and effect and effect != "individual":
        args.append(f'effect = "{effect}"')
    if kind == "random":
        args.append(f'random.method = "{spec.get("random_method", "swar")}"')
    return f"plm({', '.join(args)})"


def _r_vcov(cov_label: str, spec: Dict[str, Any], kind: str) -> Optional[str]:
    if cov_label == "unadjusted":
        return None
    if cov_label.startswith("pcse") and kind in ("pooling", "lsdv"):
        # pcse::vcovPC works on lm fits; plm fits use vcovBK
        e, t = spec["entity"], spec["time"]
        pw = "TRUE" if cov_label == "pcse-pairwise" else "FALSE"
        return f"vcovPC(m, groupN = pdata${e}, groupT = pdata${t}, pairwise = {pw})"
    return {
        "robust": 'vcovHC(m, method = "white1", type = "HC1")',
        "hc0": 'vcovHC(m, method = "white1", type = "HC0")',
        "hc1": 'vcovHC(m, method = "white1", type = "HC1")',
        "cluster-entity": 'vcovHC(m, method = "arellano", type = "sss", cluster = "group")',
        "cluster-time": 'vcovHC(m, method = "arellano", type = "sss", cluster = "time")',
        "cluster-twoway": 'vcovDC(m, type = "sss")',
        "pcse-pairwise": 'vcovBK(m, cluster = "time")',
        "pcse-casewise": 'vcovBK(m, cluster = "time")',
    }.get(cov_label)


def r_command(kind: str, spec: Dict[str, Any], effect: Optional[str] = None,
              cov_label: str = "unadjusted") -> str:
    call = f"m <- {r_model_call(kind, spec, effect)}"
    vc = _r_vcov(cov_label, spec, kind)
    if vc is None:
        return f"{call}; summary(m)"
    return f"{call}; coeftest(m, vcov = {vc})"


# ================================
# Specification tests
# ================================

def hausman_commands(method: str = "contrast") -> Dict[str, str]:
    if method == "contrast":
        return {
            "stata": "estimates store fe; estimates store re; hausman fe re",
            "r": "phtest(fe, re)",
        }
    return {
        "stata": "xtreg ..., re vce(cluster id); xtoverid",
        "r": 'phtest(fml, data = pdata, method = "aux", vcov = function(x) vcovHC(x, method = "arellano"))',
    }
