import pandas as pd
from pathlib import Path

# Delimited text formats accepted for cohort tables
TEXT_SEPARATORS = {".csv": ",", ".tsv": "\t", ".txt": "\t"}


def save_dataframe(df: pd.DataFrame, path: Path, *, csv_copy: bool = False, index: bool = False) -> Path:
    """
    Save a summary table to Parquet, with an optional CSV copy next to it.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(path, index=index)

    if csv_copy:
        df.to_csv(path.with_suffix(".csv"), index=index)

    return path


def read_dataframe(path: Path) -> pd.DataFrame:
    """
    Load a cohort table from Parquet or delimited text based on file extension.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")
    suffix = path.suffix.lower()

    if suffix == ".parquet":
        return pd.read_parquet(path)
    if suffix in TEXT_SEPARATORS:
        return pd.read_csv(path, sep=TEXT_SEPARATORS[suffix])

    raise ValueError(f"Unsupported file extension for reading: {suffix}")
