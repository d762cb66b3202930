"""QA extraction and retrieval components.

This package contains modules for:
- Word-window chunking with overlap
- Answer line reconstruction and QA pair parsing
- Bounded-concurrency QA extraction
- FAISS-backed QA record storage and similarity search
- Grounded answer composition
"""
