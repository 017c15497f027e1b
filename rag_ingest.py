#!/usr/bin/env python3
import argparse
import asyncio
import glob
import os
import sys

from chat_rag import config
from chat_rag.archive import ALLOWED_EXTENSIONS, DocumentArchive
from chat_rag.config import load_retrieval_config
from chat_rag.embeddings import SentenceTransformerEmbedder
from chat_rag.errors import RagError
from chat_rag.ingestion import IngestionPipeline
from chat_rag.milvus_client import MilvusManager
from chat_rag.utils import file_extension


def find_documents(raw_dir, pattern="**/*"):
    files = glob.glob(os.path.join(raw_dir, pattern), recursive=True)
    return sorted(f for f in files if os.path.isfile(f) and file_extension(f) in ALLOWED_EXTENSIONS)


async def ingest_files(pipeline, files):
    results = []
    for path in files:
        try:
            with open(path, "rb") as f:
                data = f.read()
            summary = await pipeline.upload_and_ingest(os.path.basename(path), data)
            results.append({
                "file": path,
                "status": "ingested",
                "id": summary.file_id,
                "chunks": len(summary.data),
                "oversized": len(summary.oversized_chunks),
            })
        except RagError as e:
            results.append({"file": path, "status": "error", "error": e.message})
    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description="Archive and ingest every .txt/.md file of a directory.")
    parser.add_argument("raw_dir", help="Directory to scan")
    parser.add_argument("--pattern", default="**/*", help="Glob pattern relative to raw_dir")
    args = parser.parse_args(argv)

    if not os.path.isdir(args.raw_dir):
        print(f"Raw data directory not found: {args.raw_dir}")
        sys.exit(1)

    try:
        retrieval = load_retrieval_config()
    except RagError as e:
        print(f"Configuration error: {e.message}")
        sys.exit(1)

    pipeline = IngestionPipeline(
        retrieval,
        DocumentArchive(config.ARCHIVE_DIR),
        SentenceTransformerEmbedder(config.EMBEDDING_MODEL),
        MilvusManager(uri=retrieval.url),
    )

    files = find_documents(args.raw_dir, args.pattern)
    print(f"Starting ingestion of {len(files)} files from: {args.raw_dir}")
    results = asyncio.run(ingest_files(pipeline, files))
    ok = [r for r in results if r["status"] == "ingested"]
    errors = [r for r in results if r["status"] == "error"]
    oversized = sum(r["oversized"] for r in ok)

    print(f"Processed {len(results)} files: {len(ok)} ingested, {len(errors)} errors, {oversized} oversized chunks.")
    if errors:
        for r in errors[:10]:
            print(f" - {r.get('file')}: {r.get('error')}")
        if len(errors) > 10:
            print(f" ... and {len(errors)-10} more")
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
