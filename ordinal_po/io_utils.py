from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import numpy as np
import pandas as pd

# Distributions whose versions go into every run record.
RUNTIME_PACKAGES = ("ordinal-po", "numpy", "pandas", "scipy", "statsmodels", "matplotlib")


def ensure_dir(path: str | os.PathLike) -> str:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return str(p)


def output_dirs(output_dir: str) -> tuple[str, str]:
    """Create `output_dir` with its tables/ and figures/ subdirectories."""
    ensure_dir(output_dir)
    return ensure_dir(os.path.join(output_dir, "tables")), ensure_dir(os.path.join(output_dir, "figures"))


def save_df(df: pd.DataFrame, out_path: str, *, index: bool = False) -> str:
    ensure_dir(Path(out_path).parent)
    df.to_csv(out_path, index=index)
    return out_path


def _json_default(obj: Any) -> Any:
    # configs and test results carry numpy scalars/arrays
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def save_json(obj: Dict[str, Any], out_path: str) -> str:
    ensure_dir(Path(out_path).parent)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2, default=_json_default)
    return out_path


def save_text(text: str, out_path: str) -> str:
    ensure_dir(Path(out_path).parent)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(text)
    return out_path


def package_versions(packages: Iterable[str] = RUNTIME_PACKAGES) -> Dict[str, Optional[str]]:
    """Installed version per distribution name (None when not installed)."""
    from importlib import metadata as importlib_metadata

    out: Dict[str, Optional[str]] = {}
    for pkg in packages:
        try:
            out[pkg] = importlib_metadata.version(pkg)
        except importlib_metadata.PackageNotFoundError:
            out[pkg] = None
    return out


def collect_environment_info(packages: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """System + package versions for the run's environment.json."""
    import datetime
    import platform
    import sys

    return {
        "timestamp_utc": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "python": {
            "version": sys.version,
            "executable": sys.executable,
        },
        "platform": {
            "platform": platform.platform(),
            "machine": platform.machine(),
        },
        "cpu_count": os.cpu_count(),
        "packages": package_versions(RUNTIME_PACKAGES if packages is None else packages),
    }


def write_run_records(output_dir: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
    """Write environment.json and run_manifest.json; the manifest gets a short environment stamp."""
    env = collect_environment_info()
    save_json(env, os.path.join(output_dir, "environment.json"))
    record = {
        **manifest,
        "timestamp_utc": env["timestamp_utc"],
        "environment": {
            "python_version": env["python"]["version"],
            "ordinal_po": env["packages"].get("ordinal-po"),
        },
    }
    save_json(record, os.path.join(output_dir, "run_manifest.json"))
    return record
