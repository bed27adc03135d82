"""healthrag: retrieval-augmented search over a medical health-check knowledge base."""

__version__ = "0.1.0"
