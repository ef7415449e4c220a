#!/usr/bin/env python3
"""
PVC Autoscaler Worker

Periodically probe the disk usage of every opted-in pod and grow the PVCs that
crossed their threshold.

Usage:
  python run_worker.py

Tip:
  - Outside a cluster the kubeconfig is used (KUBE_CONFIG_PATH / KUBE_CONTEXT)
  - Inside a cluster set `IN_CLUSTER=true`
"""

import asyncio

from dotenv import load_dotenv

# Load env vars from .env for local/dev runs.
load_dotenv()

from pvc_autoscaler.core.logging import setup_logging

setup_logging()

from pvc_autoscaler.background_worker import run_background_worker


if __name__ == "__main__":
    asyncio.run(run_background_worker())
