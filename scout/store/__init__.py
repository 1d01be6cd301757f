"""Blob storage and dataset publishing."""
