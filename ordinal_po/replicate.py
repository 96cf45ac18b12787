from __future__ import annotations

import os
from dataclasses import asdict
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import ScenarioConfig, scenario_definitions
from .errors import InvalidInput, NonConvergence
from .io_utils import output_dirs, save_df, write_run_records
from .pipeline import run_scenario
from .plotting import bar_with_error
from .stats import wilson_ci


def run_once(cfg: ScenarioConfig, *, alpha: float = 0.05) -> Dict[str, object]:
    res = run_scenario(cfg)
    omni = res.brant.omnibus
    return {
        "scenario": cfg.name,
        "seed": int(cfg.seed),
        "beta_hat": float(res.fit.slopes["exposed"]),
        "beta_se": float(res.fit.bse["exposed"]),
        "stat": float(omni["stat_chi2"]),
        "df": int(omni["df"]),
        "p_value": float(omni["p_value"]),
        "reject": bool(omni["p_value"] < alpha),
        "n_warnings": len(res.warnings),
    }


def run_many(base_cfg: ScenarioConfig, n_rep: int, alpha: float = 0.05) -> pd.DataFrame:
    """Re-seeded repetitions (seed, seed+1, ...) of one scenario.

    A repetition whose fit does not converge is kept as a row with NaN
    statistics so rejection rates are not silently computed on survivors.
    """
    if base_cfg.n_categories < 3:
        raise InvalidInput(
            f"Scenario '{base_cfg.name}' has {base_cfg.n_categories} categories; "
            "the parallel-slopes test needs at least 3."
        )
    rows = []
    for r in range(int(n_rep)):
        cfg = ScenarioConfig(**{**asdict(base_cfg), "seed": base_cfg.seed + r})
        try:
            row = run_once(cfg, alpha=alpha)
            row["status"] = "ok"
        except NonConvergence as e:
            row = {
                "scenario": cfg.name,
                "seed": int(cfg.seed),
                "beta_hat": np.nan,
                "beta_se": np.nan,
                "stat": np.nan,
                "df": np.nan,
                "p_value": np.nan,
                "reject": False,
                "n_warnings": 0,
                "status": f"nonconvergence: {e}",
            }
        row["rep"] = r
        rows.append(row)
    return pd.DataFrame(rows)


def summarize_rejections(df_res: pd.DataFrame, alpha: float = 0.05) -> pd.DataFrame:
    ok = df_res[df_res["status"] == "ok"]
    summ = (ok
            .groupby("scenario", as_index=False, sort=False)
            .agg(reject_rate=("reject", "mean"),
                 n_reject=("reject", "sum"),
                 mean_beta=("beta_hat", "mean"),
                 sd_beta=("beta_hat", "std"),
                 mean_stat=("stat", "mean"),
                 median_p=("p_value", "median"),
                 n=("reject", "size")))
    failed = df_res.groupby("scenario", sort=False)["status"].apply(lambda s: int((s != "ok").sum()))
    summ["n_failed"] = summ["scenario"].map(failed).fillna(0).astype(int)

    lo_list, hi_list = [], []
    for _, r in summ.iterrows():
        lo, hi = wilson_ci(int(r["n_reject"]), int(r["n"]), alpha=alpha)
        lo_list.append(lo)
        hi_list.append(hi)
    summ["lo"], summ["hi"] = lo_list, hi_list
    return summ


def plot_rejection_rates(summ: pd.DataFrame, base_path: str, *, dpi: int = 600) -> None:
    """Rejection rate per scenario with Wilson CI over repetitions."""
    y = summ["reject_rate"].to_numpy(dtype=float)
    yerr = np.vstack([y - summ["lo"].to_numpy(dtype=float), summ["hi"].to_numpy(dtype=float) - y])
    yerr = np.clip(yerr, 0.0, None)
    bar_with_error(
        summ["scenario"].tolist(),
        y,
        yerr,
        xlabel="Scenario",
        ylabel="Brant omnibus rejection rate (proportion)",
        base_path=base_path,
        ylim=(0.0, 1.0),
        dpi=dpi,
    )


def run_replication(
    *,
    output_dir: str,
    n_rep: int = 20,
    seed: int = 0,
    n_subjects: int = 25000,
    beta: float = 0.7,
    np_shift: float = -1.0,
    np_threshold: int = 3,
    scenarios: Optional[Sequence[str]] = None,
    alpha: float = 0.05,
    dpi: int = 600,
) -> pd.DataFrame:
    out_tables, out_figures = output_dirs(output_dir)

    defs = scenario_definitions(
        n_subjects=n_subjects,
        beta=beta,
        np_shift=np_shift,
        np_threshold=np_threshold,
        seed=seed,
    )
    selected = list(defs.keys()) if scenarios is None else list(scenarios)
    for k in selected:
        if k not in defs:
            raise ValueError(f"Unknown scenario: {k}. Available={list(defs.keys())}")

    write_run_records(
        output_dir,
        {
            "mode": "replicate",
            "n_rep": int(n_rep),
            "seed": int(seed),
            "alpha": float(alpha),
            "scenarios": {k: asdict(defs[k]) for k in selected},
        },
    )

    frames: List[pd.DataFrame] = [run_many(defs[k], n_rep, alpha=alpha) for k in selected]
    df_res = pd.concat(frames, ignore_index=True)
    summ = summarize_rejections(df_res, alpha=alpha)

    save_df(df_res, os.path.join(out_tables, "replicate_runs.csv"))
    save_df(summ, os.path.join(out_tables, "replicate_summary.csv"))
    plot_rejection_rates(summ, os.path.join(out_figures, "replicate_rejection_rates"), dpi=dpi)
    return summ
