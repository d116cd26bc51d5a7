#!/usr/bin/env python
"""
Conformance pipeline - checks the accuracy/latency contract and runs the tests.

Usage:
    python scripts/run_conformance.py [--runs 5] [--skip-tests]
"""
import argparse
import subprocess
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from quote_agent.catalog import CatalogStore
from quote_agent.config.settings import get_settings
from quote_agent.conformance import (
    keyword_accuracy,
    load_keyword_regression,
    load_scenarios,
    run_scenarios,
    summarize,
)
from quote_agent.engine.pipeline import PricingAgent
from quote_agent.engine.service_mapping import ServiceMappingEngine
from quote_agent.utils.logger import setup_logging


def main():
    parser = argparse.ArgumentParser(description="Quote agent conformance report")
    parser.add_argument('--runs', type=int, default=5, help="Runs per scenario")
    parser.add_argument('--skip-tests', action='store_true', help="Only print the report")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging("WARNING")

    print("=" * 60)
    print("QUOTE AGENT CONFORMANCE")
    print("=" * 60)
    print()

    store = CatalogStore.from_settings(settings)
    snapshot = store.snapshot()
    print(f"Catalog v{snapshot.version}: {len(snapshot)} services ({settings.catalog_path})")
    print()

    print("[1/3] Keyword mapping accuracy...")
    table = load_keyword_regression(settings.keyword_regression_path)
    accuracy, rows = keyword_accuracy(ServiceMappingEngine(snapshot), table)
    misses = rows[~rows['passed']]
    print(f"  {accuracy:.1%} over {len(rows)} phrases (target {settings.mapping_accuracy_target:.0%})")
    for _, row in misses.iterrows():
        print(f"  MISS: '{row['phrase']}' -> {row['mapped'] or '(nothing)'} (expected {row['expected_service']})")
    print()

    print(f"[2/3] Scenarios ({args.runs} runs each)...")
    agent = PricingAgent.from_settings(store, settings)
    results = run_scenarios(agent, load_scenarios(settings.scenarios_path),
                            runs=args.runs, tolerance=settings.quantity_tolerance)
    report = summarize(results, accuracy, settings.mapping_accuracy_target, settings.latency_budget_ms)
    for name, scenario in report['scenarios'].items():
        status = "✅" if scenario['passed'] else "❌"
        total = f"${scenario['total']:,.2f}" if scenario['total'] is not None else "-"
        print(f"  {status} {name}: {total} ({scenario['meanLatencyMs']} ms)")
        for problem in scenario['problems']:
            print(f"      {problem}")
    print(f"  Mean latency: {report['meanLatencyMs']} ms (budget {settings.latency_budget_ms:.0f} ms)")
    print(f"  Deterministic: {report['deterministic']}")
    print()

    tests_ok = True
    if not args.skip_tests:
        print("[3/3] Running tests...")
        test_result = subprocess.run(
            [sys.executable, '-m', 'pytest', 'tests', '-q', '--tb=short'],
            cwd=settings.project_root
        )
        tests_ok = test_result.returncode == 0
        print()

    print("=" * 60)
    if report['passed'] and tests_ok:
        print("✅ CONTRACT MET")
        print("=" * 60)
        return

    print("❌ CONTRACT MISSED")
    print("=" * 60)
    if not report['keywordAccuracyOk']:
        print("  keyword accuracy below target")
    if not report['latencyOk']:
        print("  mean latency over budget")
    if not report['deterministic']:
        print("  totals differ between runs")
    if not report['scenariosOk']:
        print("  scenario checks failed")
    if not tests_ok:
        print("  tests failed")
    sys.exit(1)


if __name__ == "__main__":
    main()
