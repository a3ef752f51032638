#!/usr/bin/env python
"""
Run the Code Alchemists backend under Gunicorn.

Environment:
PORT       port to bind (default 8787)
WORKERS    worker processes (default (2 * cpu_count) + 1)
LOG_LEVEL  gunicorn error log level, shared with the app logger (default info)
"""
import multiprocessing
import os
import subprocess
import sys


def build_command(environ=os.environ):
    cpu_count = multiprocessing.cpu_count()
    workers = int(environ.get('WORKERS', (2 * cpu_count) + 1))
    port = environ.get('PORT', '8787')
    log_level = environ.get('LOG_LEVEL', 'INFO').lower()

    # Awards are deduplicated by the database, so workers share no state
    return [
        "gunicorn",
        "--workers", str(workers),
        "--threads", "2",
        "--timeout", "120",
        "--bind", f"0.0.0.0:{port}",
        "--worker-class", "sync",
        "--log-level", log_level,
        "--access-logfile", "-",
        "app:app"
    ]


if __name__ == '__main__':
    cmd = build_command()
    print(f"Running command: {' '.join(cmd)}")
    try:
        process = subprocess.run(cmd)
        sys.exit(process.returncode)
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
        sys.exit(0)
    except FileNotFoundError:
        print("gunicorn is not installed; run `pip install -e .` first")
        sys.exit(1)
