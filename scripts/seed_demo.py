from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass

from sqlalchemy import select

from sheetbrain.core.config import get_settings
from sheetbrain.domain.models import DocumentChunk
from sheetbrain.domain.schemas import PolicyInput
from sheetbrain.persistence.db import build_engine, build_session_factory
from sheetbrain.providers.embeddings.hashing import HashEmbedder
from sheetbrain.services.ingestion import DocumentIngestor
from sheetbrain.services.policies import PolicyService


DEMO_ORG_ID = "org_demo"


@dataclass(frozen=True)
class DemoPolicy:
    # Keep seed content deterministic so hash embeddings stay repeatable.
    title: str
    category: str
    content: str


def build_demo_policies() -> tuple[DemoPolicy, ...]:
    return (
        DemoPolicy(
            title="Finance reporting standards",
            category="finance",
            content=(
                "Quarterly reports must not use volatile functions such as NOW or TODAY.\n\n"
                "Revenue totals should use SUMIF over named ranges so auditors can trace inputs."
            ),
        ),
        DemoPolicy(
            title="Lookup conventions",
            category="formula",
            content=(
                "Prefer XLOOKUP or INDEX/MATCH over VLOOKUP with hard-coded column numbers.\n\n"
                "Every lookup feeding a user-facing cell must be wrapped in IFERROR."
            ),
        ),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed demo policies and retrieval chunks.")
    parser.add_argument("--org", default=DEMO_ORG_ID, help="Organization id")
    return parser


async def seed_demo(org_id: str) -> int:
    # Use the same engine settings as the API so env config matches the container.
    engine = build_engine(get_settings())
    session_factory = build_session_factory(engine)
    try:
        policies = PolicyService(session_factory)
        await policies.seed_default_policies(org_id)

        async with session_factory() as session:
            existing = await session.execute(
                select(DocumentChunk.id).where(DocumentChunk.org_id == org_id).limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                print("Demo organization already seeded; skipping.")
                return 0

        # Hash embeddings keep the demo usable without an embeddings API key.
        ingestor = DocumentIngestor(HashEmbedder(), session_factory)
        total_chunks = 0
        for demo in build_demo_policies():
            record = await policies.add_policy(
                org_id,
                PolicyInput(title=demo.title, content=demo.content, category=demo.category, source="seed"),
            )
            chunk_ids = await ingestor.ingest_document(
                demo.content,
                {"org_id": org_id, "policy_id": record.id, "title": demo.title},
            )
            total_chunks += len(chunk_ids)
        print(f"Seeded {len(build_demo_policies())} policies with {total_chunks} chunks for {org_id}.")
        return 0
    finally:
        await engine.dispose()


def main() -> int:
    args = _build_parser().parse_args()
    # Surface clear failures and exit non-zero so CI/dev scripts can detect issues.
    try:
        return asyncio.run(seed_demo(args.org))
    except Exception as exc:  # noqa: BLE001 - surface any setup or DB errors
        print(f"seed_demo failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
