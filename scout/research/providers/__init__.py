"""Research provider adapters."""
