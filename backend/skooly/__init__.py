"""Skooly backend: course materials, RAG search and learning-content generation."""

__version__ = "0.1.0"
