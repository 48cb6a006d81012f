"""Functions for detecting outliers in facility reporting data.

Outliers are detected per field and per reporting unit with the
interquartile-range rule:

    IQR   = Q3 - Q1
    upper = Q3 + 1.5 * IQR
    lower = Q1 - 1.5 * IQR

A value is an outlier when it is strictly above ``upper`` or strictly below
``lower``. Quartiles use linear interpolation between order statistics
(Hyndman-Fan type 7, the pandas/numpy default): for ``n`` sorted values the
p-th quantile sits at 1-based position ``1 + p * (n - 1)``.
"""

import math
import pandas as pd
import numpy as np
from typing import Iterable
import logging

from hfclean.config import GROUP_KEY, IQR_MULTIPLIER

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

OUTLIER_SUFFIX = "_outlier"
STAT_SUFFIXES = ["_median", "_lower", "_upper"]


def quantile_type7(values: Iterable[float], p: float) -> float:
    """Compute the p-th quantile of a sequence with linear interpolation.

    Reference implementation of the quartile convention. The pipeline
    computes its group quartiles with pandas (compute_group_stats); this
    plain version pins down the convention and is checked against pandas
    in the test suite. Missing values are ignored. Returns NaN for an
    empty sequence.

    Args:
        values: Numeric values, possibly containing None/NaN
        p: Probability in [0, 1]

    Returns:
        Quantile value
    """
    if not 0 <= p <= 1:
        raise ValueError(f"Quantile probability must be in [0, 1], got {p}")

    ordered = sorted(float(v) for v in values if not pd.isna(v))
    if not ordered:
        return np.nan

    # 0-based position of 1 + p * (n - 1)
    h = p * (len(ordered) - 1)
    lo = math.floor(h)
    hi = min(lo + 1, len(ordered) - 1)
    return ordered[lo] + (h - lo) * (ordered[hi] - ordered[lo])


def to_numeric_field(series: pd.Series) -> pd.Series:
    """Coerce a field to float, turning non-numeric entries into NaN.

    Args:
        series: Raw field values

    Returns:
        Float series aligned with the input
    """
    values = pd.to_numeric(series, errors='coerce').astype(float)

    coerced = int((series.notna() & values.isna()).sum())
    if coerced > 0:
        logger.warning(f"Coerced {coerced} non-numeric values in '{series.name}' to missing")

    return values


def compute_group_stats(
    df: pd.DataFrame,
    field: str,
    group_col: str = GROUP_KEY,
    multiplier: float = IQR_MULTIPLIER
) -> pd.DataFrame:
    """Calculate median, quartiles and IQR bounds of a field per group.

    Groups without any non-missing value get missing statistics.
    Records with a missing group key do not belong to any group.

    Args:
        df: DataFrame containing facility records
        field: Numeric field to summarize
        group_col: Column identifying the reporting unit
        multiplier: IQR multiplier for the bounds

    Returns:
        DataFrame with one row per group and columns
        [group_col, n, median, q1, q3, iqr, lower, upper]
    """
    values = to_numeric_field(df[field])
    grouped = values.groupby(df[group_col])

    stats = pd.DataFrame({
        'n': grouped.count(),
        'median': grouped.median(),
        'q1': grouped.quantile(0.25, interpolation='linear'),
        'q3': grouped.quantile(0.75, interpolation='linear'),
    })
    stats['iqr'] = stats['q3'] - stats['q1']
    stats['lower'] = stats['q1'] - multiplier * stats['iqr']
    stats['upper'] = stats['q3'] + multiplier * stats['iqr']

    stats.index.name = group_col
    return stats.reset_index()


def flag_outliers(
    df: pd.DataFrame,
    field: str,
    group_col: str = GROUP_KEY,
    multiplier: float = IQR_MULTIPLIER
) -> pd.DataFrame:
    """Flag values of a field that fall outside their group's IQR bounds.

    Adds the columns '<field>_outlier' (bool), '<field>_median',
    '<field>_lower' and '<field>_upper'. The field itself is returned as
    float with non-numeric entries set to missing.

    Args:
        df: DataFrame containing facility records
        field: Numeric field to check
        group_col: Column identifying the reporting unit
        multiplier: IQR multiplier for the bounds

    Returns:
        Copy of the DataFrame with the flag and statistic columns added
    """
    missing_cols = [col for col in [field, group_col] if col not in df.columns]
    if missing_cols:
        raise KeyError(f"Missing required columns for outlier detection: {missing_cols}")

    # Make a copy to avoid modifying the original
    result_df = df.copy()
    result_df[field] = to_numeric_field(result_df[field])

    if result_df.empty:
        logger.warning(f"Empty dataframe provided for outlier detection on '{field}'")

    stats = compute_group_stats(result_df, field, group_col, multiplier).set_index(group_col)

    # Broadcast group statistics back to records, keeping input order
    keys = result_df[group_col]
    result_df[f'{field}_median'] = keys.map(stats['median']).astype(float)
    result_df[f'{field}_lower'] = keys.map(stats['lower']).astype(float)
    result_df[f'{field}_upper'] = keys.map(stats['upper']).astype(float)

    # Comparisons against NaN are False, so missing values and groups
    # without statistics are never flagged
    values = result_df[field]
    result_df[f'{field}{OUTLIER_SUFFIX}'] = (
        (values > result_df[f'{field}_upper']) | (values < result_df[f'{field}_lower'])
    )

    n_flagged = int(result_df[f'{field}{OUTLIER_SUFFIX}'].sum())
    n_valid = int(values.notna().sum())
    share = n_flagged / n_valid * 100 if n_valid else 0.0
    logger.info(f"'{field}': flagged {n_flagged} outliers out of {n_valid} values ({share:.2f}%) "
                f"across {len(stats)} groups of '{group_col}'")

    return result_df
