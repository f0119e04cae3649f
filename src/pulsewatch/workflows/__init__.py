"""
Workflows module - rule dispatch and the batch pipeline.
"""
from pulsewatch.workflows.dispatcher import RuleDispatcher
from pulsewatch.workflows.pipeline import PulsePipeline, build_source_key, dedupe_alerts

__all__ = [
    "RuleDispatcher",
    "PulsePipeline",
    "build_source_key",
    "dedupe_alerts",
]
