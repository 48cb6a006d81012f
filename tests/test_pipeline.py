"""End-to-end tests of the cleaning pipeline and its command line."""

import os

import numpy as np
import pandas as pd
import pytest

from hfclean.config import VARIABLE_GROUPS, OUTLIER_POLICIES
from hfclean.indicators.derive import CyclicDefinitionError, UnknownFieldError
from hfclean.outliers.correct import OutlierPolicyError
from hfclean.pipeline import process_facility_data, run_pipeline, main


@pytest.fixture
def facility_months():
    """Facility A with an extreme confirmed count, facility B with one month."""
    return pd.DataFrame({
        'hf_uid': ['A'] * 5 + ['B'],
        'year': [2023] * 6,
        'month': [1, 2, 3, 4, 5, 1],
        'conf_u5': [10, 12, 11, 9, 100, 7],
        'conf_ov5': [np.nan] * 6,
        'test_u5': [20, 22, 21, 19, 24, 0],
        'test_ov5': [5, 5, 5, 5, 5, np.nan],
    })


class TestProcessFacilityData:

    def test_outliers_then_indicators(self, facility_months):
        groups = {'conf': ['conf_u5', 'conf_ov5'], 'test': ['test_u5', 'test_ov5']}
        ratios = {'test_positivity': ('conf', 'test')}

        clean, report = process_facility_data(
            facility_months, fields=['conf_u5'], policies={}, groups=groups, ratios=ratios
        )

        assert clean['conf_u5'].tolist() == [10, 12, 11, 9, 11, 7]
        # Totals are built from corrected values
        assert clean['conf'].tolist() == [10, 12, 11, 9, 11, 7]
        assert clean['test_positivity'].iloc[4] == pytest.approx(11 / 29)
        # Facility B tested nobody
        assert clean['test'].iloc[5] == 0.0
        assert np.isnan(clean['test_positivity'].iloc[5])

        assert 'conf_u5_outlier' not in clean.columns
        assert report.set_index('field').loc['conf_u5', 'n_outliers'] == 1

    def test_keep_flags(self, facility_months):
        clean, _ = process_facility_data(
            facility_months, fields=['conf_u5'], policies={},
            groups={'conf': ['conf_u5']}, ratios={}, keep_flags=True
        )
        assert clean['conf_u5_outlier'].tolist() == [False] * 4 + [True, False]

    def test_definitions_checked_first(self, facility_months):
        with pytest.raises(UnknownFieldError):
            process_facility_data(facility_months, fields=['conf_u5'], policies={},
                                  groups={'susp': ['susp_u5']}, ratios={})

        with pytest.raises(CyclicDefinitionError):
            process_facility_data(facility_months, fields=['conf_u5'], policies={},
                                  groups={'a': ['b'], 'b': ['a']}, ratios={})

        with pytest.raises(OutlierPolicyError):
            process_facility_data(facility_months, fields=['conf_u5'],
                                  policies={'conf_u5': {'group_col': 'district'}},
                                  groups={}, ratios={})


@pytest.fixture
def export_dir(tmp_path, export_rows):
    data_dir = tmp_path / 'raw'
    data_dir.mkdir()
    export_rows.to_csv(data_dir / 'malaria_2023.csv', index=False)
    return data_dir


class TestRunPipeline:

    def test_run_pipeline_writes_outputs(self, tmp_path, export_dir):
        output_dir = tmp_path / 'processed'
        paths = run_pipeline(str(export_dir), str(output_dir))

        assert 'facility_clean' in paths
        assert 'adm2_monthly' in paths
        assert 'outlier_report' in paths

        facility = pd.read_csv(paths['facility_clean'])
        assert len(facility) == 4
        assert 'test_positivity' in facility.columns
        assert not any(col.endswith('_outlier') for col in facility.columns)

        row = facility[(facility['hf_uid'] == 'a1') & (facility['month'] == 1)].iloc[0]
        assert row['test'] == 30.0
        assert row['conf'] == 9.0
        assert row['test_positivity'] == pytest.approx(0.3)

    def test_run_pipeline_no_files(self, tmp_path):
        assert run_pipeline(str(tmp_path), str(tmp_path / 'out')) == {}


class TestMain:

    def test_main_success(self, tmp_path, export_dir):
        output_dir = tmp_path / 'out'
        code = main(['--data-dir', str(export_dir), '--output-dir', str(output_dir),
                     '--log-level', 'WARNING'])
        assert code == 0
        assert os.path.exists(output_dir / 'facility_clean.csv')

    def test_main_missing_directory(self, tmp_path):
        assert main(['--data-dir', str(tmp_path / 'missing')]) == 1

    def test_main_cyclic_definitions(self, tmp_path, export_dir, monkeypatch):
        monkeypatch.setitem(VARIABLE_GROUPS, 'cycle_a', ['cycle_b'])
        monkeypatch.setitem(VARIABLE_GROUPS, 'cycle_b', ['cycle_a'])

        output_dir = tmp_path / 'out'
        code = main(['--data-dir', str(export_dir), '--output-dir', str(output_dir)])
        assert code == 2
        assert not os.path.exists(output_dir)

    def test_main_unknown_source_field(self, tmp_path, export_dir, monkeypatch):
        monkeypatch.setitem(VARIABLE_GROUPS, 'rdt_total', ['rdt_u5'])
        assert main(['--data-dir', str(export_dir), '--output-dir', str(tmp_path / 'out')]) == 2

    def test_main_missing_outlier_group_column(self, tmp_path, export_dir, monkeypatch):
        monkeypatch.setitem(OUTLIER_POLICIES, 'test_u5', {'group_col': 'region'})

        output_dir = tmp_path / 'out'
        assert main(['--data-dir', str(export_dir), '--output-dir', str(output_dir)]) == 2
        assert not os.path.exists(output_dir)
