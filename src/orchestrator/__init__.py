"""Orchestration layer for LogiSync.

Main Entry Points:
    Reconciler: Drives tracking reconciliation for imported orders.
    ProgressTracker: Owns the progress state of the current run.
"""
