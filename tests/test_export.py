"""Tests for administrative aggregation and export."""

import os

import numpy as np
import pandas as pd
import pytest

from hfclean.data.export import (
    aggregate, aggregate_monthly, aggregate_yearly, save_dataset, export_all
)


@pytest.fixture
def clean_df():
    return pd.DataFrame({
        'adm1': ['North', 'North', 'North', 'North', 'South'],
        'adm2': ['N1', 'N1', 'N2', 'N1', 'S1'],
        'hf': ['Clinic A', 'Clinic A', 'Clinic B', 'Clinic A', 'Clinic C'],
        'hf_uid': ['a1', 'a1', 'b1', 'a1', 'c1'],
        'year': [2023, 2023, 2023, 2023, 2023],
        'month': [1, 1, 1, 2, 1],
        'test': [10.0, 5.0, np.nan, 8.0, 0.0],
        'conf': [2.0, 1.0, 3.0, 4.0, 0.0],
        'test_positivity': [0.2, 0.2, np.nan, 0.5, np.nan],
    })


class TestAggregate:

    def test_monthly_sums_include_duplicates(self, clean_df):
        result = aggregate(clean_df, ['adm1', 'adm2'], ['year', 'month'], ['test', 'conf'])
        n1_jan = result[(result['adm2'] == 'N1') & (result['month'] == 1)].iloc[0]

        assert n1_jan['test'] == 15.0
        assert n1_jan['conf'] == 3.0

    def test_missing_values_excluded(self, clean_df):
        result = aggregate(clean_df, ['adm1', 'adm2'], ['year', 'month'], ['test', 'conf'])
        n2 = result[result['adm2'] == 'N2'].iloc[0]
        assert n2['test'] == 0.0
        assert n2['conf'] == 3.0

    def test_ratios_recomputed_not_summed(self, clean_df):
        result = aggregate(clean_df, ['adm1'], ['year'], ['test', 'conf'])
        north = result[result['adm1'] == 'North'].iloc[0]
        south = result[result['adm1'] == 'South'].iloc[0]

        assert north['test_positivity'] == pytest.approx(10.0 / 23.0)
        assert np.isnan(south['test_positivity'])

    def test_default_value_columns(self, clean_df):
        result = aggregate_yearly(clean_df, 'adm1')
        assert set(result.columns) == {'adm1', 'year', 'test', 'conf', 'test_positivity'}

    def test_monthly_levels(self, clean_df):
        assert len(aggregate_monthly(clean_df, 'adm1')) == 3
        assert len(aggregate_monthly(clean_df, 'hf')) == 4

    def test_unknown_level(self, clean_df):
        with pytest.raises(ValueError):
            aggregate_monthly(clean_df, 'adm9')

    def test_missing_key_column(self, clean_df):
        with pytest.raises(KeyError):
            aggregate(clean_df.drop(columns=['month']), ['adm1'], ['year', 'month'])


class TestExport:

    def test_save_dataset(self, tmp_path, clean_df):
        path = save_dataset(clean_df, 'facility', str(tmp_path / 'out'))
        assert path.endswith('facility.csv')
        assert len(pd.read_csv(path)) == 5

    def test_export_all(self, tmp_path, clean_df):
        paths = export_all(clean_df, str(tmp_path))

        expected = {'facility_clean'} | {f'{level}_{period}' for level in ['adm1', 'adm2', 'hf']
                                         for period in ['monthly', 'yearly']}
        assert set(paths) == expected
        for path in paths.values():
            assert os.path.exists(path)

    def test_export_skips_levels_without_columns(self, tmp_path, clean_df):
        paths = export_all(clean_df.drop(columns=['adm2']), str(tmp_path))
        assert set(paths) == {'facility_clean', 'adm1_monthly', 'adm1_yearly'}
