#!/usr/bin/env python3
"""
Start the proof aggregation API server.
This script checks the environment and starts the FastAPI server.
"""

import os
import subprocess
import sys

from dotenv import load_dotenv

from backend.security.runtime_env import MissingEnvironmentVariable, get_required_env


def _require_env(var_name: str) -> str:
    try:
        return get_required_env(var_name)
    except MissingEnvironmentVariable as exc:
        print(f"[fatal] {exc}")
        raise SystemExit(1) from exc


def main():
    load_dotenv()

    # The program image is loaded once at startup; without it nothing can run.
    _require_env("AGGREGATOR_PROGRAM_PATH")
    if os.getenv("AGGREGATOR_NETWORK", "local").strip() in ("reserved", "mainnet"):
        _require_env("AGGREGATOR_NETWORK_API_KEY")
    else:
        _require_env("AGGREGATOR_PROVER_BIN")

    port = os.getenv("AGGREGATOR_API_PORT", "8020")
    print("Starting proof aggregation API server...")
    print(f"Server will be available at: http://localhost:{port}")
    print(f"API Documentation: http://localhost:{port}/docs")
    print("\nPress Ctrl+C to stop the server")

    try:
        subprocess.run(
            [
                sys.executable,
                "-m",
                "uvicorn",
                "interface.api.app:app",
                "--port",
                port,
            ],
            check=True,
        )
    except KeyboardInterrupt:
        print("\nServer stopped.")


if __name__ == "__main__":
    main()
