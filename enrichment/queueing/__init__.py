from .orchestrator import BatchOrchestrator, EnrichmentPipeline, OpportunityReport, build_update

__all__ = [
    "BatchOrchestrator",
    "EnrichmentPipeline",
    "OpportunityReport",
    "build_update",
]
