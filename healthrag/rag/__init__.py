"""Retrieval core for the medical knowledge base.

This package contains modules for:
- Knowledge file loading and front matter parsing
- Heading-aware chunking
- FAISS exact cosine indexing
- Rule-based relevance scoring
- Retrieval orchestration and ingestion
"""
