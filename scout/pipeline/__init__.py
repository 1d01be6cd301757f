"""Candidate extraction, validation, merging and run orchestration."""
