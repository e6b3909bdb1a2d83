"""Vector store module for the content-library RAG pipeline.

Provides sentence-aware chunking, OpenAI embedding generation, the hosted
vector index client, an in-process embedding store, and the seeding pipeline.
"""
