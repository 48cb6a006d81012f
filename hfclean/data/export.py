"""Functions for aggregating cleaned facility data and writing it to disk."""

import os
import pandas as pd
from typing import List, Dict, Tuple, Optional
import logging
from tqdm import tqdm

from hfclean.config import (
    OUTPUT_DIR, ADMIN_LEVELS, TIME_COLS, NUMERIC_FIELDS, VARIABLE_GROUPS, RATIO_INDICATORS
)
from hfclean.indicators.derive import ratio_series

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def default_value_columns(df: pd.DataFrame) -> List[str]:
    """Declared count fields and group totals present in the data."""
    return [col for col in NUMERIC_FIELDS + list(VARIABLE_GROUPS) if col in df.columns]


def aggregate(
    df: pd.DataFrame,
    level_cols: List[str],
    period_cols: List[str],
    value_cols: Optional[List[str]] = None,
    ratios: Dict[str, Tuple[str, str]] = RATIO_INDICATORS
) -> pd.DataFrame:
    """Sum count fields per administrative unit and period.

    Missing values are excluded from the sums. Ratio indicators are not
    summed; they are recomputed from the aggregated numerators and
    denominators.

    Args:
        df: Cleaned facility records
        level_cols: Administrative columns defining the unit
        period_cols: Period columns (e.g. ['year', 'month'])
        value_cols: Columns to sum (default: declared fields and group totals)
        ratios: Ratio indicators to recompute after aggregation

    Returns:
        Aggregated DataFrame
    """
    keys = level_cols + period_cols
    missing_cols = [col for col in keys if col not in df.columns]
    if missing_cols:
        raise KeyError(f"Missing required columns for aggregation: {missing_cols}")

    if value_cols is None:
        value_cols = default_value_columns(df)

    agg_df = df.groupby(keys, dropna=False)[value_cols].sum().reset_index()

    for name, (numerator, denominator) in ratios.items():
        if numerator in agg_df.columns and denominator in agg_df.columns:
            agg_df[name] = ratio_series(agg_df[numerator], agg_df[denominator])

    logger.info(f"Aggregated {len(df)} records into {len(agg_df)} rows by {keys}")
    return agg_df


def _level_cols(level: str) -> List[str]:
    if level not in ADMIN_LEVELS:
        raise ValueError(f"Unknown administrative level '{level}', expected one of {list(ADMIN_LEVELS)}")
    return ADMIN_LEVELS[level]


def aggregate_monthly(df: pd.DataFrame, level: str = "adm2") -> pd.DataFrame:
    """Aggregate to one row per administrative unit, year and month."""
    return aggregate(df, _level_cols(level), TIME_COLS)


def aggregate_yearly(df: pd.DataFrame, level: str = "adm2") -> pd.DataFrame:
    """Aggregate to one row per administrative unit and year."""
    return aggregate(df, _level_cols(level), TIME_COLS[:1])


def save_dataset(df: pd.DataFrame, name: str, output_dir: Optional[str] = None) -> str:
    """Save a dataset as CSV.

    Args:
        df: DataFrame to save
        name: File name without extension
        output_dir: Directory to save into (default: OUTPUT_DIR)

    Returns:
        Path of the written file
    """
    if output_dir is None:
        output_dir = OUTPUT_DIR

    # Create output directory if it doesn't exist
    os.makedirs(output_dir, exist_ok=True)

    output_path = os.path.join(output_dir, f"{name}.csv")
    df.to_csv(output_path, index=False)
    logger.info(f"Saved {len(df)} rows to {output_path}")
    return output_path


def export_all(df: pd.DataFrame, output_dir: Optional[str] = None) -> Dict[str, str]:
    """Write the facility dataset and monthly/yearly aggregates for every level.

    Levels whose administrative columns are missing from the data are skipped.

    Args:
        df: Cleaned facility records with derived indicators
        output_dir: Directory to save into (default: OUTPUT_DIR)

    Returns:
        Dictionary mapping dataset names to file paths
    """
    paths = {'facility_clean': save_dataset(df, 'facility_clean', output_dir)}

    for level in tqdm(ADMIN_LEVELS, desc="Aggregating"):
        absent = [col for col in ADMIN_LEVELS[level] + TIME_COLS if col not in df.columns]
        if absent:
            logger.warning(f"Skipping {level} aggregates, missing columns: {absent}")
            continue

        monthly_name = f"{level}_monthly"
        paths[monthly_name] = save_dataset(aggregate_monthly(df, level), monthly_name, output_dir)

        yearly_name = f"{level}_yearly"
        paths[yearly_name] = save_dataset(aggregate_yearly(df, level), yearly_name, output_dir)

    logger.info(f"Exported {len(paths)} datasets")
    return paths
