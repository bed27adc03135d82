#!/usr/bin/env python
"""Index the knowledge directory and optionally run test queries.

Usage:
    python scripts/reindex.py                          # Index config.KNOWLEDGE_DIR
    python scripts/reindex.py --knowledge-dir docs/    # Index another directory
    python scripts/reindex.py -q "白细胞升高是什么原因"    # Index, then search
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from healthrag import config
from healthrag.llm_client import OllamaClient
from healthrag.logging_setup import configure_logging
from healthrag.rag.loader import KnowledgeLoader
from healthrag.rag.service import KnowledgeBase


def print_report(report: dict, stats: dict, elapsed_seconds: float):
    print(f"\n{'=' * 60}")
    print("  Indexing Complete!")
    print(f"{'=' * 60}\n")
    print(f"  Documents seen:     {report['documents']}")
    print(f"  Documents failed:   {report['failedDocuments']}")
    print(f"  Chunks accepted:    {report['accepted']}")
    print(f"  Chunks rejected:    {report['rejected']}")
    print(f"  Sources indexed:    {stats['totalSources']}")
    print(f"  Dimension:          {stats['dimension']}")
    print(f"  Time elapsed:       {elapsed_seconds:.1f}s")
    print(f"\n{'=' * 60}\n")


def print_outcome(outcome: dict):
    print(f"Query: {outcome['query']}")
    if "message" in outcome:
        print(f"  ({outcome['message']})")
    if "error" in outcome:
        print(f"  Error: {outcome['error']}")
    for i, result in enumerate(outcome["results"], 1):
        metadata = result["metadata"]
        title = metadata.get("title") or metadata.get("parentTitle") or ""
        print(f"  {i}. [{result['score']:.0f}] {metadata['source']} {title}")
    print()


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Index medical knowledge files and run sample searches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--knowledge-dir",
        type=Path,
        default=None,
        help=f"Knowledge directory (default: {config.KNOWLEDGE_DIR})",
    )

    parser.add_argument(
        "--query",
        "-q",
        action="append",
        default=[],
        help="Search to run after indexing (repeatable)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logs",
    )

    args = parser.parse_args()

    configure_logging(level="DEBUG" if args.verbose else "WARNING", json_output=False)

    print("\nConfiguration:")
    print(f"   Knowledge directory: {args.knowledge_dir or config.KNOWLEDGE_DIR}")
    print(f"   Embedding model:     {config.EMBEDDING_MODEL}")
    print(f"   Chunk bounds:        {config.MIN_CHUNK_CHARS}-{config.MAX_CHUNK_CHARS} chars")

    knowledge_base = KnowledgeBase(
        embedder=OllamaClient(),
        loader=KnowledgeLoader(root=args.knowledge_dir),
    )

    start_time = datetime.now()
    try:
        report = await knowledge_base.load_directory()
        elapsed = (datetime.now() - start_time).total_seconds()
        print_report(report.to_dict(), knowledge_base.stats().to_dict(), elapsed)

        for query in args.query:
            outcome = await knowledge_base.search(query)
            print_outcome(outcome.to_dict())

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        sys.exit(1)

    finally:
        await knowledge_base.close()

    if report.failed_documents > 0:
        print(f"Warning: {report.failed_documents} document(s) failed to index.")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
