"""Pytest configuration and shared fixtures."""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def facility_df():
    """Facility A with one extreme month, facility B with a single month."""
    return pd.DataFrame({
        'hf_uid': ['A', 'A', 'A', 'A', 'A', 'B'],
        'year': [2023] * 6,
        'month': [1, 2, 3, 4, 5, 1],
        'conf_u5': [10, 12, 11, 9, 100, 7],
    })


@pytest.fixture
def test_groups():
    """Minimal group definitions used in indicator tests."""
    return {'test': ['test_u5', 'test_ov5', 'test_preg']}


@pytest.fixture
def test_ratios():
    """Minimal ratio definitions used in indicator tests."""
    return {'test_positivity': ('conf', 'test')}


@pytest.fixture
def export_rows():
    """Rows as they come out of the health information system export."""
    return pd.DataFrame({
        'orgunitlevel2': ['North', 'North', 'North', 'South'],
        'orgunitlevel3': ['N1', 'N1', 'N2', 'S1'],
        'organisationunitname': ['Clinic A', 'Clinic A', 'Clinic B', 'Clinic C'],
        'organisationunitid': ['a1', 'a1', 'b1', 'c1'],
        'periodid': [202301, 202302, 202301, 202301],
        'Malaria tested <5y': [10, 12, 5, 'n/a'],
        'Malaria tested >=5y': [20, 18, np.nan, 4],
        'Confirmed malaria <5y': [3, 4, 1, 0],
        'Confirmed malaria >=5y': [6, 5, np.nan, 0],
    })
