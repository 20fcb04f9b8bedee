"""Application use cases operating on a database session."""
