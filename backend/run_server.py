#!/usr/bin/env python3
"""
Launch script for the Route Playback Backend.

Usage:
    python run_server.py [data_folder] [--port PORT] [--host HOST] [--tick SECONDS]

Examples:
    python run_server.py                    # Saved routes in memory only
    python run_server.py ./data             # Persist saved routes under ./data/routes
    python run_server.py --tick 0.5        # Tick twice per second
    python run_server.py --seed 42          # Reproducible speeds, pauses and drift
"""

import argparse
import os
import sys
from pathlib import Path

# Add app to path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    parser = argparse.ArgumentParser(description="Route Playback Backend Server")
    parser.add_argument(
        "data_folder",
        nargs="?",
        default=None,
        help="Folder for saved routes (default: keep routes in memory)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)"
    )
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )
    parser.add_argument(
        "--tick", "-t",
        type=float,
        default=1.0,
        help="Tick interval in seconds (default: 1.0)"
    )
    parser.add_argument(
        "--seed", "-s",
        type=int,
        default=None,
        help="Random seed for speed, pause and drift sampling"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Run in debug mode"
    )

    args = parser.parse_args()

    if args.tick <= 0:
        parser.error("--tick must be positive")

    print(f"Route Playback Backend")
    print(f"=" * 40)
    if args.data_folder:
        data_folder = Path(args.data_folder)
        print(f"Data folder: {data_folder.absolute()}")
        os.environ["ROUTESIM_DATA_FOLDER"] = str(data_folder)
    else:
        print("Data folder: (memory only)")
    print(f"Tick interval: {args.tick}s")
    print(f"Server: http://{args.host}:{args.port}")
    print(f"=" * 40)

    os.environ["ROUTESIM_TICK_INTERVAL"] = str(args.tick)
    if args.seed is not None:
        os.environ["ROUTESIM_SEED"] = str(args.seed)

    print("\nAPI Endpoints:")
    print("  GET  /                    - Health check")
    print("  GET  /health              - Detailed health")
    print("  POST /playback/start      - Start a route")
    print("  POST /playback/pause      - Pause / resume")
    print("  POST /playback/stop       - Stop playback")
    print("  POST /playback/teleport   - Jump or walk to a point")
    print("  GET  /playback/status     - Engine status and progress")
    print("  GET  /playback/position   - Recent fixes")
    print("  GET  /runs                - Run history")
    print("  GET  /routes              - Saved routes")
    print("\nStarting server...")

    import uvicorn

    uvicorn.run(
        "routesim.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()
