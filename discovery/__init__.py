"""
Community Discovery

Natural-language member discovery for multi-tenant membership directories.

Philosophy:
- Every search is scoped to exactly one community (tenant)
- Structured filters are hard predicates, never relaxed
- Semantic and lexical retrieval run side by side and degrade independently
- Follow-up turns refine earlier ones through a bounded conversation window

Usage:
    from discovery.common import load_config, EmbeddingClient
    from discovery.common.schemas import MemberRecord, SearchSpecification
    from discovery.extractor import EntityExtractor
    from discovery.retriever import DiscoveryPipeline, HybridSearchEngine
"""

__version__ = "0.1.0"
