"""
Agent Profit Scout.

Weekly research pipeline that collects reports of AI agents making money,
admits only candidates backed by trusted sources and explicit monetary
evidence, and publishes them as a versioned case-study dataset.

Subpackages:
- research: multi-stage research jobs, provider adapters, aggregation
- pipeline: extraction prompts, candidate validation, merging, run orchestration
- store: blob storage and dataset publishing
- config: YAML settings and API key management
"""

__version__ = "0.2.0"
