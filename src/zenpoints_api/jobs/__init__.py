"""Background jobs executed by the scheduler."""
