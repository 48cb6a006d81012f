"""Functions for deriving composite indicators from facility reporting data.

Two kinds of derived fields are supported:

- variable groups, the row-wise sum of a list of source fields, and
- ratio indicators, numerator / denominator.

They treat missing values differently:

- A sum counts missing sources as zero. A group whose sources are all
  missing sums to 0, not to missing.
- A ratio is missing when its denominator is missing, zero or negative.
  A missing numerator counts as zero.

Keep this asymmetry as it is. Downstream outputs depend on it.
"""

import math
import pandas as pd
from graphlib import TopologicalSorter, CycleError
from typing import List, Dict, Tuple, Optional, Iterable, Mapping, Any
import logging

from hfclean.config import VARIABLE_GROUPS, RATIO_INDICATORS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class IndicatorDefinitionError(ValueError):
    """Invalid set of variable group / ratio definitions."""


class CyclicDefinitionError(IndicatorDefinitionError):
    """Derived fields depend on each other in a cycle."""


class UnknownFieldError(IndicatorDefinitionError):
    """A definition references a field that is neither in the data nor derived."""


def to_number(value: Any) -> Optional[float]:
    """Convert a raw value to float, returning None for missing or non-numeric values."""
    if value is None or value is pd.NA:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def sum_available(values: Iterable[Any]) -> float:
    """Sum the non-missing values; an all-missing or empty input sums to 0.

    >>> sum_available([5, None, 3])
    8.0
    >>> sum_available([None, float('nan')])
    0.0
    """
    total = 0.0
    for value in values:
        number = to_number(value)
        if number is not None:
            total += number
    return total


def safe_ratio(numerator: Any, denominator: Any) -> Optional[float]:
    """Divide numerator by denominator, or return None if the denominator is not positive.

    >>> safe_ratio(1, 5)
    0.2
    >>> safe_ratio(10, 0) is None
    True
    """
    denominator = to_number(denominator)
    if denominator is None or denominator <= 0:
        return None

    numerator = to_number(numerator)
    if numerator is None:
        numerator = 0.0

    return numerator / denominator


def ratio_series(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Vectorized safe_ratio: NaN wherever the denominator is missing or not positive."""
    numerator = pd.to_numeric(numerator, errors='coerce').astype(float).fillna(0.0)
    denominator = pd.to_numeric(denominator, errors='coerce').astype(float)
    return numerator / denominator.where(denominator > 0)


def _dependencies(
    groups: Mapping[str, List[str]],
    ratios: Mapping[str, Tuple[str, str]]
) -> Dict[str, List[str]]:
    deps = {name: list(sources) for name, sources in groups.items()}
    for name, (numerator, denominator) in ratios.items():
        deps[name] = [numerator, denominator]
    return deps


def resolve_derivation_order(
    groups: Mapping[str, List[str]] = VARIABLE_GROUPS,
    ratios: Mapping[str, Tuple[str, str]] = RATIO_INDICATORS
) -> List[str]:
    """Order derived fields so every field comes after the derived fields it uses.

    Args:
        groups: Mapping of derived name to source fields summed
        ratios: Mapping of derived name to (numerator, denominator)

    Returns:
        List of derived field names in evaluation order

    Raises:
        IndicatorDefinitionError: A name is declared both as group and ratio
        CyclicDefinitionError: The definitions contain a cycle
    """
    duplicated = sorted(set(groups) & set(ratios))
    if duplicated:
        raise IndicatorDefinitionError(f"Fields declared both as group and ratio: {duplicated}")

    deps = _dependencies(groups, ratios)
    sorter = TopologicalSorter()
    for name, inputs in deps.items():
        sorter.add(name, *[field for field in inputs if field in deps])

    try:
        return list(sorter.static_order())
    except CycleError as err:
        cycle = err.args[1]
        raise CyclicDefinitionError(
            f"Cyclic indicator definition: {' -> '.join(cycle)}"
        ) from err


def validate_definitions(
    groups: Mapping[str, List[str]],
    ratios: Mapping[str, Tuple[str, str]],
    available_fields: Iterable[str]
) -> None:
    """Check that every referenced field exists in the data or is derived.

    Raises:
        UnknownFieldError: Listing each unknown field and the indicators using it
    """
    available = set(available_fields)
    deps = _dependencies(groups, ratios)

    unknown = {}
    for name, inputs in deps.items():
        for field in inputs:
            if field not in available and field not in deps:
                unknown.setdefault(field, []).append(name)

    if unknown:
        details = ", ".join(f"'{field}' (used by {users})" for field, users in sorted(unknown.items()))
        raise UnknownFieldError(f"Unknown source fields in indicator definitions: {details}")


def derive_record(
    record: Mapping[str, Any],
    groups: Mapping[str, List[str]] = VARIABLE_GROUPS,
    ratios: Mapping[str, Tuple[str, str]] = RATIO_INDICATORS
) -> Dict[str, Any]:
    """Derive all indicators for a single record.

    Args:
        record: Mapping of field name to value
        groups: Mapping of derived name to source fields summed
        ratios: Mapping of derived name to (numerator, denominator)

    Returns:
        New dict with the original fields and every derived field; missing
        ratios are None
    """
    order = resolve_derivation_order(groups, ratios)
    validate_definitions(groups, ratios, record.keys())

    derived = dict(record)
    for name in order:
        if name in groups:
            derived[name] = sum_available(derived[field] for field in groups[name])
        else:
            numerator, denominator = ratios[name]
            derived[name] = safe_ratio(derived[numerator], derived[denominator])

    return derived


def derive_indicators(
    df: pd.DataFrame,
    groups: Mapping[str, List[str]] = VARIABLE_GROUPS,
    ratios: Mapping[str, Tuple[str, str]] = RATIO_INDICATORS
) -> pd.DataFrame:
    """Derive all indicators for every record of a DataFrame.

    Same semantics as derive_record, with NaN for missing ratios. Existing
    derived columns are recomputed, so applying this twice gives the same
    result.

    Args:
        df: DataFrame containing facility records
        groups: Mapping of derived name to source fields summed
        ratios: Mapping of derived name to (numerator, denominator)

    Returns:
        Copy of the DataFrame with derived columns added
    """
    order = resolve_derivation_order(groups, ratios)
    validate_definitions(groups, ratios, df.columns)

    logger.info(f"Deriving {len(groups)} group totals and {len(ratios)} ratio indicators")

    # Make a copy to avoid modifying the original
    df_derived = df.copy()

    # Surface how many source values are unusable
    derived_names = set(order)
    source_fields = sorted({field for inputs in _dependencies(groups, ratios).values()
                            for field in inputs if field not in derived_names})
    for field in source_fields:
        raw = df_derived[field]
        coerced = int((raw.notna() & pd.to_numeric(raw, errors='coerce').isna()).sum())
        if coerced > 0:
            logger.warning(f"Treating {coerced} non-numeric values in '{field}' as missing")

    for name in order:
        if name in groups:
            if not groups[name]:
                df_derived[name] = 0.0
                continue
            sources = df_derived[groups[name]].apply(pd.to_numeric, errors='coerce')
            df_derived[name] = sources.sum(axis=1, min_count=0).astype(float)
        else:
            numerator, denominator = ratios[name]
            df_derived[name] = ratio_series(df_derived[numerator], df_derived[denominator])
            n_missing = int(df_derived[name].isna().sum())
            if n_missing > 0:
                logger.info(f"'{name}' is missing for {n_missing} records without a positive '{denominator}'")

    logger.info("Indicator derivation complete")
    return df_derived
