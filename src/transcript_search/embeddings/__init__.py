"""
Transcript chunking, embedding, vectorization and search.

Import submodules directly, e.g. `from transcript_search.embeddings.chunker
import Chunker`.
"""
