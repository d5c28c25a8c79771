import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from transcript_search.api.dependencies import get_embedder, vectorizer_session
from transcript_search.db import AsyncSessionLocal, PgChunkStore, init_models
from transcript_search.embeddings.search import VectorSearch


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Vectorize and search segment transcripts.")
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--segment", type=int, help="Re-vectorize one segment by id")
    action.add_argument("--all", action="store_true", help="Re-vectorize every segment with a transcript")
    action.add_argument("--status", action="store_true", help="Print vectorization status")
    action.add_argument("--search", metavar="QUERY", help="Search transcripts")
    action.add_argument("--init-db", action="store_true", help="Create the vector extension and tables")
    parser.add_argument("--limit", type=int, default=10, help="Number of search results")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)

    if args.init_db:
        await init_models()
        print("Tables created.")
        return 0

    if args.search:
        async with AsyncSessionLocal() as session:
            results = await VectorSearch(PgChunkStore(session), get_embedder()).search(
                args.search, limit=args.limit
            )
        if not results:
            print("No results.")
        for r in results:
            print(f"{r.similarity:.3f}  {r.module_title} / {r.segment_title} (#{r.chunk_index})")
            print(f"       {r.chunk_text[:160]!r}")
        return 0

    async with vectorizer_session() as vectorizer:
        if args.segment is not None:
            result = await vectorizer.vectorize_one(args.segment)
            print(f"Segment {result.segment_id}: {result.chunks_created} chunks, "
                  f"{result.chunks_embedded} embedded.")
            return 0

        if args.all:
            report = await vectorizer.vectorize_all()
            print(f"Processed: {report.processed}  Skipped: {report.skipped}  Failed: {report.failed}")
            for err in report.errors:
                print(f"  FAILED {err.segment_id} ({err.title}): {err.error}")
            return 1 if report.failed else 0

        status = await vectorizer.get_status()
        for s in status.segments:
            marker = "x" if s.is_vectorized else ("!" if s.needs_vectorization else " ")
            print(f"[{marker}] {s.id:>5}  {s.module_title} / {s.title}  chunks={s.chunk_count}")
        stats = status.stats
        print(f"Segments: {stats.total_segments}  With transcripts: {stats.with_transcripts}  "
              f"Vectorized: {stats.vectorized}  Pending: {stats.needs_vectorization}  "
              f"Chunks: {stats.total_chunks}  Missing embeddings: {stats.chunks_missing_embeddings}")
        return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
