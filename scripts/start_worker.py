#!/usr/bin/env python3
# =============================================================================
# scripts/start_worker.py - Celery Worker Entry Point
# =============================================================================
# Starts a Celery worker for the transformation pipeline.
#
# Usage:
#   python scripts/start_worker.py [concurrency]
#
#   # Or use Celery CLI directly
#   celery -A workers.celery_app worker --loglevel=info -Q transformations,default
#
# Prerequisites:
#   - Redis must be running
#   - REPLICATE_API_TOKEN must be set (.env file)
# =============================================================================

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from workers.celery_app import celery_app


def main():
    """Start the Celery worker."""
    concurrency = sys.argv[1] if len(sys.argv) > 1 else "2"

    print("=" * 60)
    print("Portrait Studio Worker")
    print("=" * 60)
    print(f"Queues: transformations, default  |  Concurrency: {concurrency}")
    print("Press Ctrl+C to stop")
    print()

    celery_app.worker_main([
        "worker",
        "--loglevel=info",
        "-Q", "transformations,default",
        f"--concurrency={concurrency}",
    ])


if __name__ == "__main__":
    main()
