"""Research stages, provider adapters and the job state machine."""
