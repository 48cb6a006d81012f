"""Functions for loading and standardizing health facility exports."""

import os
import glob
import pandas as pd
import numpy as np
from typing import List, Dict, Tuple, Optional
import logging
from tqdm import tqdm

from hfclean.config import (
    DATA_DIR, EXPORT_PATTERN, PERIOD_COL, RENAME_MAP, NUMERIC_FIELDS
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def detect_separator(file_path: str) -> str:
    """Detect whether a CSV file uses comma or semicolon as separator.

    Args:
        file_path: Path to the CSV file

    Returns:
        Detected separator (';' or ',')
    """
    with open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
        header = f.readline()
    return ';' if header.count(';') > header.count(',') else ','


def find_export_files(data_dir: str = DATA_DIR, pattern: str = EXPORT_PATTERN) -> List[str]:
    """List export files in a directory.

    Args:
        data_dir: Directory containing the exports
        pattern: Glob pattern of the export files

    Returns:
        Sorted list of file paths
    """
    if not os.path.isdir(data_dir):
        logger.error(f"Data directory not found: {data_dir}")
        raise FileNotFoundError(f"Data directory not found: {data_dir}")

    return sorted(glob.glob(os.path.join(data_dir, pattern)))


def read_export_file(file_path: str) -> pd.DataFrame:
    """Read a single export file and tag its rows with the file name.

    Args:
        file_path: Path to the CSV export

    Returns:
        DataFrame with an added 'source_file' column
    """
    sep = detect_separator(file_path)
    df = pd.read_csv(file_path, sep=sep)
    df['source_file'] = os.path.basename(file_path)
    return df


def load_exports(data_dir: str = DATA_DIR, pattern: str = EXPORT_PATTERN) -> pd.DataFrame:
    """Load and combine all export files of a directory.

    Files that cannot be parsed are logged and skipped.

    Args:
        data_dir: Directory containing the exports
        pattern: Glob pattern of the export files

    Returns:
        DataFrame with combined data (empty if nothing was loaded)
    """
    files = find_export_files(data_dir, pattern)
    if not files:
        logger.warning(f"No data files found in {data_dir} matching pattern {pattern}")
        return pd.DataFrame()

    logger.info(f"Found {len(files)} data files to load")

    dfs = []
    for file_path in tqdm(files, desc="Loading files"):
        try:
            df = read_export_file(file_path)
        except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            logger.error(f"Error loading {file_path}: {str(e)}")
            continue

        dfs.append(df)
        logger.info(f"Loaded {len(df)} rows from {os.path.basename(file_path)}")

    if not dfs:
        logger.warning("No data was successfully loaded")
        return pd.DataFrame()

    combined_df = pd.concat(dfs, ignore_index=True)
    logger.info(f"Combined data has {len(combined_df)} rows and {len(combined_df.columns)} columns")
    return combined_df


def rename_columns(df: pd.DataFrame, rename_map: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """Rename export columns to short field names.

    Column names are stripped of surrounding whitespace first. Columns
    without a mapping are kept as they are.

    Args:
        df: DataFrame as read from the exports
        rename_map: Mapping of export column name to field name

    Returns:
        DataFrame with renamed columns
    """
    if rename_map is None:
        rename_map = RENAME_MAP

    df_renamed = df.copy()
    df_renamed.columns = [str(col).strip() for col in df_renamed.columns]

    mapped = [col for col in df_renamed.columns if col in rename_map]
    df_renamed = df_renamed.rename(columns=rename_map)

    logger.info(f"Renamed {len(mapped)} of {len(df_renamed.columns)} columns")
    return df_renamed


def parse_period(df: pd.DataFrame, period_col: str = PERIOD_COL) -> pd.DataFrame:
    """Split a YYYYMM period column into integer 'year' and 'month' columns.

    Periods that do not parse, or whose month is outside 1-12, get missing
    year and month.

    Args:
        df: DataFrame with a period column
        period_col: Name of the period column

    Returns:
        DataFrame with 'year' and 'month' columns
    """
    if period_col not in df.columns:
        logger.warning(f"{period_col} column not found in DataFrame")
        return df

    df_period = df.copy()

    # Periods read as floats (column with gaps) look like '202301.0'
    periods = df_period[period_col].astype(str).str.strip().str.replace(r'\.0$', '', regex=True)
    parts = periods.str.extract(r'^(\d{4})(\d{2})$')
    year = pd.to_numeric(parts[0], errors='coerce')
    month = pd.to_numeric(parts[1], errors='coerce')

    invalid = month.notna() & ~month.between(1, 12)
    unparsed = int(month.isna().sum())
    if invalid.any() or unparsed:
        logger.warning(f"{int(invalid.sum()) + unparsed} records have an invalid '{period_col}', "
                       f"setting their year and month to missing")
    month = month.where(~invalid)
    year = year.where(month.notna())

    df_period['year'] = year.astype('Int64')
    df_period['month'] = month.astype('Int64')

    logger.info("Parsed reporting periods into year and month")
    return df_period


def coerce_numeric(
    df: pd.DataFrame,
    fields: List[str] = NUMERIC_FIELDS
) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """Convert declared numeric fields to numbers.

    Values that cannot be parsed become missing and are counted per field.
    Declared fields absent from the export are added as all-missing columns,
    so every run sees the same schema.

    Args:
        df: DataFrame with raw field values
        fields: Declared numeric fields

    Returns:
        Tuple of (converted DataFrame, mapping of field to coerced count)
    """
    df_numeric = df.copy()

    absent = [field for field in fields if field not in df_numeric.columns]
    if absent:
        logger.warning(f"{len(absent)} declared numeric fields are not in the data, "
                       f"adding them as missing: {absent}")

    counts = {}
    for field in fields:
        if field in absent:
            df_numeric[field] = np.nan
            continue
        raw = df_numeric[field]
        converted = pd.to_numeric(raw, errors='coerce')
        counts[field] = int((raw.notna() & converted.isna()).sum())
        df_numeric[field] = converted

    total = sum(counts.values())
    if total > 0:
        offenders = {field: count for field, count in counts.items() if count > 0}
        logger.warning(f"Coerced {total} non-numeric values to missing: {offenders}")

    return df_numeric, counts


def prepare_facility_data(data_dir: str = DATA_DIR, pattern: str = EXPORT_PATTERN) -> pd.DataFrame:
    """Load, rename, parse periods and coerce numeric fields.

    Args:
        data_dir: Directory containing the exports
        pattern: Glob pattern of the export files

    Returns:
        Facility-month records ready for cleaning
    """
    df = load_exports(data_dir, pattern)
    if df.empty:
        return df

    df = rename_columns(df)
    df = parse_period(df)
    df, _ = coerce_numeric(df)

    logger.info(f"Prepared {len(df)} facility records")
    return df
