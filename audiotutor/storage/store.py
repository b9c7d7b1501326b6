from __future__ import annotations

"""Parquet-backed store for finished session results using pandas + pyarrow.

Unit of data: one row per finished session.
"""

from pathlib import Path
from typing import Optional

import pandas as pd

from .schema import DTYPES, PACINGS, COMPLEXITIES, TLX_KEYS, SessionResultRow


DATA_FILE = "session_results.parquet"


def _empty_df() -> pd.DataFrame:
    return pd.DataFrame({k: pd.Series(dtype=v) for k, v in DTYPES.items()})


def init_store(data_dir: Path) -> None:
    """Ensure data directory and an empty Parquet file with correct schema exist."""
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    path = data_dir / DATA_FILE
    if not path.exists():
        _empty_df().to_parquet(path, engine="pyarrow", compression="zstd", index=False)


def validate_records(records: list[SessionResultRow]) -> pd.DataFrame:
    """Validate rows and return a DataFrame with categorical and unsigned dtypes."""
    if not isinstance(records, list):
        raise TypeError("records must be a list[SessionResultRow]")
    rows = [r if isinstance(r, SessionResultRow) else SessionResultRow.model_validate(r) for r in records]
    if not rows:
        return _empty_df()
    df = pd.DataFrame([r.model_dump() for r in rows])
    return _fix_dtypes(df)


def _fix_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    for col, dt in DTYPES.items():
        if col not in df.columns:
            df[col] = pd.NA
        df[col] = df[col].astype(dt)
    return df[list(DTYPES.keys())]


def append_session_results(df_new: pd.DataFrame, data_path: Path) -> None:
    """Append rows, replacing any earlier row with the same session_id."""
    f = Path(data_path) / DATA_FILE
    df_old = pd.read_parquet(f, engine="pyarrow") if f.exists() else _empty_df()
    df_new = _fix_dtypes(df_new.copy())
    if not df_old.empty:
        df_old = df_old[~df_old["session_id"].astype("string").isin(df_new["session_id"].astype("string"))]
    combined = pd.concat([df_old, df_new], ignore_index=True) if not df_old.empty else df_new
    combined = _fix_dtypes(combined)
    combined.to_parquet(f, engine="pyarrow", compression="zstd", index=False)


def load_all(data_path: Path) -> pd.DataFrame:
    """Load all session results and compute convenience columns.

    Adds:
    - acc: float32 = quiz_score / quiz_total (0 when the quiz was empty)
    - raw_tlx: float32 = unweighted mean of the four workload sliders
    """
    f = Path(data_path) / DATA_FILE
    if not f.exists():
        return _empty_df().assign(acc=pd.Series(dtype="float32"), raw_tlx=pd.Series(dtype="float32"))
    df = _fix_dtypes(pd.read_parquet(f, engine="pyarrow"))
    total = df["quiz_total"].astype("float32")
    acc = (df["quiz_score"].astype("float32") / total.where(total > 0, other=1.0)).where(total > 0, other=0.0)
    df["acc"] = acc.astype("float32")
    df["raw_tlx"] = df[TLX_KEYS].astype("float32").mean(axis=1).astype("float32")
    return df


def query_condition(df: pd.DataFrame, *, complexity: Optional[str] = None, pacing: Optional[str] = None) -> pd.DataFrame:
    """Filter rows by complexity and/or pacing, sorted by finish time. None matches any value."""
    if complexity is not None and complexity not in COMPLEXITIES:
        raise ValueError(f"Unknown complexity: {complexity}")
    if pacing is not None and pacing not in PACINGS:
        raise ValueError(f"Unknown pacing: {pacing}")
    mask = pd.Series(True, index=df.index)
    if complexity is not None:
        mask &= df["complexity"].astype("string") == complexity
    if pacing is not None:
        mask &= df["pacing"].astype("string") == pacing
    return df[mask].sort_values("finished_at").reset_index(drop=True)


def export_ndjson(df: pd.DataFrame, out_path: Path) -> None:
    """Export a DataFrame to line-delimited JSON (NDJSON) for quick inspection."""
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    df.to_json(out_path, orient="records", lines=True, date_format="iso")
