"""Functions for correcting outliers in facility reporting data."""

import os
import pandas as pd
from typing import List, Dict, Optional, Iterable
import logging
from tqdm import tqdm

from hfclean.config import (
    OUTPUT_DIR, GROUP_KEY, IQR_MULTIPLIER, OUTLIER_RULES, OUTLIER_FIELDS,
    OUTLIER_POLICIES, DEFAULT_OUTLIER_POLICY
)
from hfclean.outliers.detect import flag_outliers, OUTLIER_SUFFIX, STAT_SUFFIXES

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class OutlierPolicyError(ValueError):
    """Outlier policy with an unknown rule or a group column missing from the data."""


def _check_rule(rule: str) -> None:
    if rule not in OUTLIER_RULES:
        raise OutlierPolicyError(f"Unknown outlier correction rule '{rule}', expected one of {OUTLIER_RULES}")


def correct_outliers(
    df: pd.DataFrame,
    field: str,
    group_col: str = GROUP_KEY,
    rule: str = "median",
    multiplier: float = IQR_MULTIPLIER,
    keep_diagnostics: bool = False
) -> pd.DataFrame:
    """Replace outliers of a field with the median of their group.

    Non-flagged and missing values pass through unchanged. The input
    DataFrame is not modified.

    Args:
        df: DataFrame containing facility records
        field: Numeric field to correct
        group_col: Column identifying the reporting unit
        rule: 'median' to replace flagged values, 'flag' to only flag them
        multiplier: IQR multiplier for the bounds
        keep_diagnostics: Keep the '<field>_median/_lower/_upper' columns

    Returns:
        Corrected copy of the DataFrame with a '<field>_outlier' column
    """
    _check_rule(rule)

    result_df = flag_outliers(df, field, group_col, multiplier)
    mask = result_df[f'{field}{OUTLIER_SUFFIX}']

    if rule == "median":
        result_df[field] = result_df[field].where(~mask, result_df[f'{field}_median'])
        logger.info(f"Replaced {int(mask.sum())} outliers in '{field}' with the '{group_col}' median")

    if not keep_diagnostics:
        result_df = result_df.drop(columns=[f'{field}{suffix}' for suffix in STAT_SUFFIXES])

    return result_df


def resolve_policies(
    fields: List[str],
    policies: Optional[Dict[str, Dict]] = None,
    available_columns: Optional[Iterable[str]] = None
) -> Dict[str, Dict]:
    """Combine per-field policy overrides with the default policy.

    When the data columns are given, every field present in the data must
    have its group column present too. Fields absent from the data are
    skipped by the corrector and not checked.

    Args:
        fields: Fields to correct
        policies: Mapping of field to {'group_col': ..., 'rule': ...}
        available_columns: Columns of the data to be corrected

    Returns:
        Dictionary mapping every field to a complete policy
    """
    if policies is None:
        policies = OUTLIER_POLICIES

    resolved = {}
    for field in fields:
        policy = dict(DEFAULT_OUTLIER_POLICY)
        policy.update(policies.get(field, {}))
        _check_rule(policy['rule'])
        resolved[field] = policy

    if available_columns is not None:
        columns = set(available_columns)
        missing = {field: policy['group_col'] for field, policy in resolved.items()
                   if field in columns and policy['group_col'] not in columns}
        if missing:
            details = ", ".join(f"'{field}' groups by '{group_col}'"
                                for field, group_col in missing.items())
            raise OutlierPolicyError(f"Outlier group columns not in data: {details}")

    return resolved


def correct_all_outliers(
    df: pd.DataFrame,
    fields: List[str] = OUTLIER_FIELDS,
    policies: Optional[Dict[str, Dict]] = None,
    multiplier: float = IQR_MULTIPLIER,
    keep_diagnostics: bool = False
) -> pd.DataFrame:
    """Correct outliers field by field, each with its own group statistics.

    Args:
        df: DataFrame containing facility records
        fields: Fields to correct
        policies: Per-field policy overrides (default: OUTLIER_POLICIES)
        multiplier: IQR multiplier for the bounds
        keep_diagnostics: Keep the per-field statistic columns

    Returns:
        Corrected copy of the DataFrame
    """
    # Reject bad policies before touching any field
    resolved = resolve_policies(fields, policies, df.columns)

    if df.empty:
        logger.warning("Empty dataframe provided for outlier correction")
        return df.copy()

    available = [field for field in fields if field in df.columns]
    skipped = [field for field in fields if field not in df.columns]
    if skipped:
        logger.warning(f"Skipping {len(skipped)} outlier fields not present in data: {skipped}")

    logger.info(f"Starting outlier correction for {len(available)} fields")

    result_df = df
    for field in tqdm(available, desc="Correcting outliers"):
        policy = resolved[field]
        result_df = correct_outliers(
            result_df,
            field,
            group_col=policy['group_col'],
            rule=policy['rule'],
            multiplier=multiplier,
            keep_diagnostics=keep_diagnostics
        )

    if result_df is df:
        result_df = df.copy()

    logger.info("Outlier correction complete")
    return result_df


def summarize_outliers(df: pd.DataFrame, fields: Optional[List[str]] = None) -> pd.DataFrame:
    """Count flagged records per field.

    Args:
        df: DataFrame with '<field>_outlier' columns
        fields: Fields to summarize (None for every flagged field found)

    Returns:
        DataFrame with columns [field, n_values, n_outliers, pct_outliers]
    """
    if fields is None:
        fields = [col[:-len(OUTLIER_SUFFIX)] for col in df.columns
                  if col.endswith(OUTLIER_SUFFIX) and col[:-len(OUTLIER_SUFFIX)] in df.columns]

    rows = []
    for field in fields:
        flag_col = f'{field}{OUTLIER_SUFFIX}'
        if flag_col not in df.columns:
            continue
        n_values = int(df[field].notna().sum())
        n_outliers = int(df[flag_col].sum())
        rows.append({
            'field': field,
            'n_values': n_values,
            'n_outliers': n_outliers,
            'pct_outliers': n_outliers / n_values * 100 if n_values else 0.0,
        })

    return pd.DataFrame(rows, columns=['field', 'n_values', 'n_outliers', 'pct_outliers'])


def drop_outlier_flags(df: pd.DataFrame, fields: Optional[List[str]] = None) -> pd.DataFrame:
    """Remove the transient outlier diagnostic columns of the corrected fields.

    Args:
        df: DataFrame produced by the outlier corrector
        fields: Corrected fields (None for every field with a '<field>_outlier' flag)

    Returns:
        DataFrame without flag and statistic columns
    """
    if fields is None:
        fields = [col[:-len(OUTLIER_SUFFIX)] for col in df.columns
                  if col.endswith(OUTLIER_SUFFIX) and col[:-len(OUTLIER_SUFFIX)] in df.columns]

    diagnostic_cols = [f'{field}{suffix}' for field in fields
                       for suffix in [OUTLIER_SUFFIX] + STAT_SUFFIXES
                       if f'{field}{suffix}' in df.columns]

    return df.drop(columns=diagnostic_cols)


def save_outlier_report(report: pd.DataFrame, output_path: Optional[str] = None) -> Optional[str]:
    """Save the outlier summary to CSV.

    Args:
        report: DataFrame produced by summarize_outliers
        output_path: Path to save the report (default: OUTPUT_DIR/outlier_report.csv)

    Returns:
        Path of the written file, or None when there is nothing to save
    """
    if report.empty:
        logger.warning("No outlier report to save")
        return None

    if output_path is None:
        output_path = os.path.join(OUTPUT_DIR, 'outlier_report.csv')

    # Create output directory if it doesn't exist
    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    report.to_csv(output_path, index=False)
    logger.info(f"Saved outlier report for {len(report)} fields to {output_path}")
    return output_path
