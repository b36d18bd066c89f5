"""
Content Processors Package

Modules:
--------
- parser: Text extraction from uploaded files (PDF, DOCX, code, text)
- chunker: Prose and code-aware chunking
- embedder: Gemini embeddings in document / query mode
"""
