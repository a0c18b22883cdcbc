#!/usr/bin/env python3
"""
Member Search Demo

Loads a member directory from JSON into the in-memory index and runs
natural-language queries against it as one conversation, printing the
ranked results and why each member matched.

Usage:
    python scripts/search_demo.py members.json --tenant alumni-1 "1995 mechanical batch" "in Chennai"
    python scripts/search_demo.py members.json --tenant alumni-1 --interactive
"""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def print_response(response):
    if response.needs_clarification:
        print(f"[Search] {response.message}")
        for suggestion in response.suggestions:
            print(f"  - {suggestion}")
        return

    spec = response.specification
    print(f"[Search] intent={response.intent.value} confidence={response.confidence:.2f}"
          f"{' (follow-up)' if response.carried_over else ''}")
    print(f"[Search] text: {spec.canonical_text!r}")
    if not spec.filters.is_empty:
        print(f"[Search] filters: {spec.filters.describe()}")
    if response.degraded_sources:
        print(f"[Search] WARNING: degraded, missing {', '.join(response.degraded_sources)}")

    if not response.results:
        print("[Search] No members found")
        return

    for rank, result in enumerate(response.results, start=spec.offset + 1):
        member = result.member
        details = ", ".join(
            str(v) for v in (member.graduation_year, member.branch, member.city) if v
        )
        print(f"{rank:3d}. {member.name} ({details})  score={result.combined_score:.3f}")
        why = result.explanation
        print(f"     via {'+'.join(why.sources)}"
              f"{'; ' + '; '.join(why.matched_filters) if why.matched_filters else ''}")


async def run(args):
    from discovery.common.config import load_config
    from discovery.common.embedding_service import EmbeddingClient
    from discovery.common.errors import DiscoveryError
    from discovery.retriever import DiscoveryPipeline, InMemoryMemberIndex

    config = load_config()
    if args.no_llm:
        config.extractor.llm_enabled = False

    index = InMemoryMemberIndex.from_json(args.members)
    print(f"[Search] Loaded {len(index.members(args.tenant))} members for {args.tenant}")

    embedding_client = EmbeddingClient.from_config(config.embedding)
    if embedding_client.is_available and not args.no_embed:
        print(f"[Search] Embedding members with {config.embedding.primary_provider}...")
        count = await index.embed_members(embedding_client, tenant_id=args.tenant)
        print(f"[Search] Embedded {count} members")
    else:
        print("[Search] Embeddings disabled, searching lexically only")

    pipeline = DiscoveryPipeline.from_config(config, index, embedding_client=embedding_client)

    queries = list(args.queries)
    while True:
        if queries:
            query = queries.pop(0)
        elif args.interactive:
            try:
                query = input("\nquery> ").strip()
            except EOFError:
                break
            if not query:
                break
        else:
            break

        print(f"\n> {query}")
        try:
            response = await pipeline.run_query(args.tenant, args.session, query, limit=args.limit)
        except DiscoveryError as e:
            print(f"[Search] ERROR: {e}")
            continue
        print_response(response)


def main():
    parser = argparse.ArgumentParser(description="Run conversational member searches over a JSON directory")
    parser.add_argument("members", type=Path, help="JSON file with a list of member records")
    parser.add_argument("queries", nargs="*", help="Queries to run in order, as one conversation")
    parser.add_argument("--tenant", required=True, help="Community to search")
    parser.add_argument("--session", default="demo", help="Conversation id")
    parser.add_argument("--limit", type=int, default=None, help="Results per query")
    parser.add_argument("--interactive", action="store_true", help="Read further queries from stdin")
    parser.add_argument("--no-embed", action="store_true", help="Skip member embedding")
    parser.add_argument("--no-llm", action="store_true", help="Use rule-based extraction only")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if not args.queries and not args.interactive:
        parser.error("give at least one query or --interactive")

    asyncio.run(run(args))


if __name__ == "__main__":
    main()
