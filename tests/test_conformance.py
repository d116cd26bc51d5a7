"""
Published contract: keyword accuracy, scenario parity and determinism.
"""
import pandas as pd
import pytest

from quote_agent.config.settings import get_data_dir
from quote_agent.conformance import (
    keyword_accuracy,
    load_keyword_regression,
    load_scenarios,
    run_scenarios,
    summarize,
)
from quote_agent.engine.pipeline import PricingAgent
from quote_agent.engine.service_mapping import ServiceMappingEngine


@pytest.fixture(scope="module")
def regression_table():
    return load_keyword_regression(get_data_dir() / 'keyword_regression.csv')


@pytest.fixture(scope="module")
def scenarios():
    return load_scenarios(get_data_dir() / 'parity_scenarios.json')


@pytest.fixture(scope="module")
def scenario_results(snapshot, scenarios):
    return run_scenarios(PricingAgent(snapshot), scenarios, runs=2)


def test_keyword_accuracy_meets_target(snapshot, regression_table):
    accuracy, report = keyword_accuracy(ServiceMappingEngine(snapshot), regression_table)
    assert len(report) == len(regression_table) >= 30
    misses = report[~report['passed']]
    assert accuracy >= 0.8, misses.to_dict('records')


def test_regression_table_names_real_services(snapshot, regression_table):
    for name in regression_table['expected_service'].unique():
        assert snapshot.find_by_name(name) is not None, name


def test_regression_table_column_check(tmp_path):
    path = tmp_path / 'bad.csv'
    path.write_text("text,service\nmulch,Triple Ground Mulch (SQFT)\n", encoding='utf-8')
    with pytest.raises(ValueError):
        load_keyword_regression(path)
    with pytest.raises(FileNotFoundError):
        load_keyword_regression(tmp_path / 'missing.csv')


def test_every_scenario_passes(scenarios, scenario_results):
    assert len(scenario_results) == len(scenarios) * 2
    failed = scenario_results[~scenario_results['passed']]
    assert failed.empty, failed[['scenario', 'problems']].to_dict('records')


def test_summary_reports_contract_met(scenario_results):
    report = summarize(scenario_results, accuracy=0.9)
    assert report['passed']
    assert report['deterministic']
    assert report['latencyOk']
    assert report['scenarios']['no_service']['total'] is None
    assert report['scenarios']['mulch_only']['total'] == pytest.approx(99.30)


def test_summary_flags_missed_targets():
    results = pd.DataFrame([
        {'scenario': 'a', 'run': 0, 'latency_ms': 9500.0, 'stage': 'complete', 'total': 100.0,
         'services_ok': True, 'total_ok': True, 'message_ok': True, 'passed': True, 'problems': ''},
        {'scenario': 'a', 'run': 1, 'latency_ms': 9100.0, 'stage': 'complete', 'total': 101.0,
         'services_ok': True, 'total_ok': True, 'message_ok': True, 'passed': True, 'problems': ''},
    ])
    report = summarize(results, accuracy=0.5)
    assert not report['keywordAccuracyOk']
    assert not report['latencyOk']
    assert not report['deterministic']
    assert not report['passed']
