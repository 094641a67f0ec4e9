"""Document question answering: ingestion, retrieval and grounded generation."""

__version__ = "0.1.0"
