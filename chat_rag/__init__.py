"""
Retrieval-augmented chat service.
Implements document archiving, chunking, embeddings, Milvus I/O and the
ingestion and query pipelines in front of an OpenAI-compatible model server.
"""
