"""
Conformance Harness - Checks the published accuracy/performance contract.

- keyword mapping accuracy over a phrase -> expected service table
- scenario runs: services, quantities (within tolerance), total range,
  required message text, latency and determinism across repeated runs
"""
import json
import logging
import time
from pathlib import Path

import pandas as pd

from ..engine.service_mapping import ServiceMappingEngine

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    'scenario', 'run', 'latency_ms', 'stage', 'total',
    'services_ok', 'total_ok', 'message_ok', 'passed', 'problems',
]


def load_keyword_regression(path: Path) -> pd.DataFrame:
    """Load the phrase -> expected_service table."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Keyword regression table not found: {path}")
    df = pd.read_csv(path, dtype=str).fillna('')
    missing = {'phrase', 'expected_service'} - set(df.columns)
    if missing:
        raise ValueError(f"Keyword regression table missing columns: {sorted(missing)}")
    df['phrase'] = df['phrase'].str.strip()
    df['expected_service'] = df['expected_service'].str.strip()
    return df[df['phrase'] != ''].reset_index(drop=True)


def load_scenarios(path: Path) -> list[dict]:
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return data.get('scenarios', [])


def keyword_accuracy(engine: ServiceMappingEngine, table: pd.DataFrame) -> tuple[float, pd.DataFrame]:
    """
    Map every phrase and compare with the expected service.

    A row passes when the expected service is among the mapped names (an
    unresolved tie counts if the expected service is one of its candidates).
    Returns (accuracy, per-row DataFrame).
    """
    rows = []
    for phrase, expected in zip(table['phrase'], table['expected_service']):
        result = engine.map_user_input(phrase)
        names = []
        for mapped in result.services:
            names.append(mapped.service_name)
            for sid in mapped.candidates:
                entry = engine.snapshot.get(sid)
                if entry is not None and entry.service_name not in names:
                    names.append(entry.service_name)
        rows.append({
            'phrase': phrase,
            'expected_service': expected,
            'mapped': "; ".join(names),
            'passed': expected in names,
        })

    report = pd.DataFrame(rows, columns=['phrase', 'expected_service', 'mapped', 'passed'])
    accuracy = float(report['passed'].mean()) if len(report) else 0.0
    return accuracy, report


def _check_services(expected: list[dict], collection, tolerance: float) -> tuple[bool, list[str]]:
    problems = []
    found = {s.service_name: s for s in collection.services} if collection else {}
    for want in expected:
        svc = found.get(want['serviceName'])
        if svc is None:
            problems.append(f"missing {want['serviceName']}")
            continue
        if 'unit' in want and svc.unit != want['unit']:
            problems.append(f"{want['serviceName']}: unit {svc.unit} != {want['unit']}")
        if 'quantity' in want:
            qty = want['quantity']
            if svc.quantity is None or abs(svc.quantity - qty) / qty > tolerance:
                problems.append(f"{want['serviceName']}: quantity {svc.quantity} != {qty}")
    return not problems, problems


def run_scenarios(agent, scenarios: list[dict], runs: int = 5, tolerance: float = 0.10) -> pd.DataFrame:
    """
    Run each scenario `runs` times through the agent.

    One row per run with latency, total, and pass/fail for each check.
    """
    rows = []
    for scenario in scenarios:
        name = scenario['name']
        text = scenario['input']
        expect = scenario.get('expect', {})
        for run in range(runs):
            start = time.perf_counter()
            response = agent.run(text)
            latency_ms = (time.perf_counter() - start) * 1000

            pricing = response.pricing
            total = pricing.totals.total_cost if pricing and pricing.success else None
            message = response.sales_response.message.lower()

            services_ok, problems = _check_services(expect.get('services', []), response.collection, tolerance)
            if expect.get('noServices'):
                services_ok = bool(response.collection) and not response.collection.services
                if not services_ok:
                    problems.append("expected no services")

            total_ok = True
            if 'totalRange' in expect:
                lo, hi = expect['totalRange']
                total_ok = total is not None and lo <= total <= hi
                if not total_ok:
                    problems.append(f"total {total} outside [{lo}, {hi}]")

            missing_text = [t for t in expect.get('messageContains', []) if t.lower() not in message]
            if missing_text:
                problems.append(f"message missing {missing_text}")

            rows.append({
                'scenario': name,
                'run': run,
                'latency_ms': latency_ms,
                'stage': response.stage,
                'total': total,
                'services_ok': services_ok,
                'total_ok': total_ok,
                'message_ok': not missing_text,
                'passed': services_ok and total_ok and not missing_text,
                'problems': "; ".join(problems),
            })
            if problems:
                logger.warning("Scenario %s run %d: %s", name, run, "; ".join(problems))

    results = pd.DataFrame(rows, columns=RESULT_COLUMNS)
    results['total'] = pd.to_numeric(results['total'])
    return results


def summarize(results: pd.DataFrame, accuracy: float, accuracy_target: float = 0.8,
              latency_budget_ms: float = 8000.0) -> dict:
    """Contract report: accuracy, mean latency, determinism and scenario passes."""
    scenarios = {}
    deterministic = True
    for name, group in results.groupby('scenario', sort=False):
        totals = group['total'].dropna().round(6).unique()
        stable = len(totals) <= 1 and (group['total'].isna().all() or group['total'].notna().all())
        deterministic = deterministic and stable
        scenarios[name] = {
            'passed': bool(group['passed'].all()),
            'meanLatencyMs': round(float(group['latency_ms'].mean()), 2),
            'total': None if group['total'].isna().all() else round(float(group['total'].iloc[0]), 2),
            'deterministic': bool(stable),
            'problems': sorted({p for p in group['problems'] if p}),
        }

    mean_latency = float(results['latency_ms'].mean()) if len(results) else 0.0
    report = {
        'keywordAccuracy': round(accuracy, 4),
        'keywordAccuracyOk': accuracy >= accuracy_target,
        'meanLatencyMs': round(mean_latency, 2),
        'latencyOk': mean_latency <= latency_budget_ms,
        'deterministic': deterministic,
        'scenariosOk': all(s['passed'] for s in scenarios.values()),
        'scenarios': scenarios,
    }
    report['passed'] = (
        report['keywordAccuracyOk'] and report['latencyOk']
        and report['deterministic'] and report['scenariosOk']
    )
    return report
