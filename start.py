"""
Convenience launcher: starts the limiter service and (optionally) the
browsing simulator against it.

Usage:
    python start.py                       # service only
    python start.py --simulate            # service + simulator (cycle all scenarios)
    python start.py --simulate --speed 4  # faster simulation
"""

from __future__ import annotations

import argparse
import subprocess
import sys
import time

from limiter.config import config


def start_service() -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "limiter.main"],
        stdout=sys.stdout,
        stderr=sys.stderr,
    )


def start_simulator(speed: float) -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "scripts/simulate.py", "--speed", str(speed)],
        stdout=sys.stdout,
        stderr=sys.stderr,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Start the Distracting Sites Limiter")
    parser.add_argument("--simulate", action="store_true", help="Also run the browsing simulator")
    parser.add_argument("--speed", type=float, default=1.0, help="Simulator speed multiplier")
    args = parser.parse_args()

    print("Starting limiter service…")
    service = start_service()
    simulator = None

    if args.simulate:
        time.sleep(1.5)  # let uvicorn bind
        print("Starting browsing simulator…")
        simulator = start_simulator(args.speed)

    print(f"\nService → http://{config.api_host}:{config.api_port}")
    print(f"Data    → {config.data_dir}")
    print("Press Ctrl+C to stop.\n")

    try:
        service.wait()
    except KeyboardInterrupt:
        print("\nShutting down…")
        for proc in (simulator, service):
            if proc is not None:
                proc.terminate()
                proc.wait()


if __name__ == "__main__":
    main()
