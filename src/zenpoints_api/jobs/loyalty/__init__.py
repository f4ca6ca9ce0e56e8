from .cycle_reset import CycleReconciliationJob, ReconciliationSummary, run_cycle_reconciliation

__all__ = ["CycleReconciliationJob", "ReconciliationSummary", "run_cycle_reconciliation"]
