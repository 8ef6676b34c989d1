"""
Opportunity enrichment pipeline.

Takes discovered opportunities (candidate websites), validates the domain in
three tiers and extracts the owner's contact channels into a normalized
ContactRecord. See enrichment.queueing.EnrichmentPipeline for the entry points.
"""

__version__ = "0.1.0"
