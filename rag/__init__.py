"""Retrieval-augmented question answering over the content library."""
