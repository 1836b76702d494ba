"""
Lineage Store - lineage graph ingestion, traversal and interchange export.
"""

__version__ = "0.1.0"
