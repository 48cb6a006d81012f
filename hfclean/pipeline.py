"""Run the complete facility data cleaning pipeline."""

import argparse
import logging
import os
import sys
from typing import Dict, List, Optional, Tuple

import pandas as pd

from hfclean.config import (
    DATA_DIR, OUTPUT_DIR, EXPORT_PATTERN, OUTLIER_FIELDS, OUTLIER_POLICIES,
    VARIABLE_GROUPS, RATIO_INDICATORS
)
from hfclean.data.load import prepare_facility_data
from hfclean.data.export import export_all
from hfclean.outliers.correct import (
    correct_all_outliers, summarize_outliers, drop_outlier_flags, save_outlier_report,
    resolve_policies, OutlierPolicyError
)
from hfclean.indicators.derive import (
    derive_indicators, resolve_derivation_order, validate_definitions, IndicatorDefinitionError
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def process_facility_data(
    df: pd.DataFrame,
    fields: List[str] = OUTLIER_FIELDS,
    policies: Optional[Dict[str, Dict]] = None,
    groups: Dict[str, List[str]] = VARIABLE_GROUPS,
    ratios: Dict[str, Tuple[str, str]] = RATIO_INDICATORS,
    keep_flags: bool = False
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Correct outliers and derive indicators.

    All definitions are checked before any record is touched.

    Args:
        df: Facility-month records
        fields: Fields to correct for outliers
        policies: Per-field outlier policy overrides
        groups: Variable group definitions
        ratios: Ratio indicator definitions
        keep_flags: Keep the '<field>_outlier' columns in the output

    Returns:
        Tuple of (cleaned DataFrame, outlier summary)
    """
    logger.info("Starting facility data processing pipeline")

    resolve_policies(fields, policies if policies is not None else OUTLIER_POLICIES, df.columns)
    resolve_derivation_order(groups, ratios)
    validate_definitions(groups, ratios, df.columns)

    # 1. Correct outliers
    df_clean = correct_all_outliers(df, fields, policies)
    report = summarize_outliers(df_clean, fields)
    if not keep_flags:
        df_clean = drop_outlier_flags(df_clean, fields)

    # 2. Derive indicators
    df_clean = derive_indicators(df_clean, groups, ratios)

    logger.info("Facility data processing pipeline complete")
    return df_clean, report


def run_pipeline(
    data_dir: str = DATA_DIR,
    output_dir: str = OUTPUT_DIR,
    pattern: str = EXPORT_PATTERN,
    keep_flags: bool = False
) -> Dict[str, str]:
    """Load exports, clean them and write all outputs.

    Args:
        data_dir: Directory containing the exports
        output_dir: Directory for the cleaned datasets
        pattern: Glob pattern of the export files
        keep_flags: Keep the outlier flag columns in the facility dataset

    Returns:
        Dictionary mapping dataset names to file paths
    """
    df = prepare_facility_data(data_dir, pattern)
    if df.empty:
        logger.warning("Nothing to process")
        return {}

    df_clean, report = process_facility_data(df, keep_flags=keep_flags)

    paths = export_all(df_clean, output_dir)
    report_path = save_outlier_report(report, os.path.join(output_dir, 'outlier_report.csv'))
    if report_path is not None:
        paths['outlier_report'] = report_path

    return paths


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Clean routine health facility data: correct outliers, derive indicators, aggregate."
    )
    parser.add_argument("--data-dir", default=DATA_DIR, help="Directory containing the CSV exports")
    parser.add_argument("--output-dir", default=OUTPUT_DIR, help="Directory for the cleaned outputs")
    parser.add_argument("--pattern", default=EXPORT_PATTERN, help="Glob pattern of the export files")
    parser.add_argument("--keep-flags", action="store_true",
                        help="Keep the <field>_outlier columns in the facility dataset")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    try:
        paths = run_pipeline(args.data_dir, args.output_dir, args.pattern, args.keep_flags)
    except IndicatorDefinitionError as e:
        logger.error(f"Invalid indicator definitions: {e}")
        return 2
    except OutlierPolicyError as e:
        logger.error(f"Invalid outlier configuration: {e}")
        return 2
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1

    for name, path in paths.items():
        logger.info(f"{name}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
