# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the core logic, separated from API handlers:
#   - chunker.py: paragraph / sentence-group splitting, token counting
#   - embedder.py: OpenAI embeddings (batched, per-text failure isolation)
#   - vectorstore.py: similarity store protocol (pgvector, Chroma)
#   - matching.py: per-paragraph matching, stats, source merging
#   - classifier.py: URL → academic / trusted / blog / unknown
#   - web_search.py: Google Custom Search client
#   - llm.py: LLM provider abstraction (Anthropic, OpenAI-compatible)
#   - rewriting.py: rewrites with retry and structured parsing
#   - analysis.py: writing style and AI-content detection
#   - batch.py: grouped multi-file processing
#   - errors.py, security.py, rate_limiter.py, cache.py: cross-cutting
# =============================================================================
