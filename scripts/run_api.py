#!/usr/bin/env python
"""
Start the quote agent API under uvicorn.

Usage:
    python scripts/run_api.py [--port 8000] [--catalog path/to/catalog.json] [--no-reload]
"""
import argparse
import os
import subprocess
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Run the quote agent API")
    parser.add_argument('--host', default="0.0.0.0")
    parser.add_argument('--port', default=os.environ.get("QUOTE_AGENT_PORT", "8000"))
    parser.add_argument('--catalog', help="Service catalog JSON (defaults to the shipped catalog)")
    parser.add_argument('--log-level', default=os.environ.get("QUOTE_AGENT_LOG_LEVEL", "INFO"))
    parser.add_argument('--no-reload', action='store_true', help="Disable auto-reload on code changes")
    args = parser.parse_args()

    project_root = Path(__file__).parent.parent
    os.chdir(project_root)

    # src on the path for the uvicorn subprocess
    env = os.environ.copy()
    src_path = str(project_root / "src")
    env["PYTHONPATH"] = os.pathsep.join(p for p in (src_path, env.get("PYTHONPATH")) if p)
    env["QUOTE_AGENT_LOG_LEVEL"] = args.log_level.upper()
    if args.catalog:
        env["QUOTE_AGENT_CATALOG"] = str(Path(args.catalog).resolve())

    command = [
        sys.executable, "-m", "uvicorn",
        "quote_agent.api.main:app",
        "--host", args.host,
        "--port", str(args.port),
        "--log-level", args.log_level.lower(),
    ]
    if not args.no_reload:
        command.append("--reload")

    print(f"Starting Quote Agent API on {args.host}:{args.port}")
    if args.catalog:
        print(f"  catalog: {env['QUOTE_AGENT_CATALOG']}")
    try:
        subprocess.run(command, env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
