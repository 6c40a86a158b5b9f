from __future__ import annotations
import os

CACHE_DIR = os.environ.get("MATRIXCI_CACHE_DIR", ".matrixci/cache")
WORKERS = int(os.environ["MATRIXCI_WORKERS"]) if os.environ.get("MATRIXCI_WORKERS") else None
MAIN_BRANCH = os.environ.get("MATRIXCI_MAIN_BRANCH", "main")
CACHE_KEEP = int(os.environ.get("MATRIXCI_CACHE_KEEP", "3"))
DEFAULT_WORKFLOW = os.environ.get("MATRIXCI_WORKFLOW", "matrixci_workflow.py")
