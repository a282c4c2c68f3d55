"""
Services Package
================
Enrichment and image sourcing pipelines.
"""
