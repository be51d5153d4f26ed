from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from sheetbrain.apps.api.container import AppServices
from sheetbrain.apps.api.deps import get_services, require_principal
from sheetbrain.apps.api.rate_limit import enforce_rate_limit
from sheetbrain.domain.schemas import IngestRequest, PolicyInput, Principal
from sheetbrain.services.resilience import run_best_effort

router = APIRouter(tags=["ingest"])


@router.post("/api/ingest")
async def ingest_document(
    request: Request,
    principal: Principal = Depends(require_principal),
    services: AppServices = Depends(get_services),
) -> JSONResponse:
    start = time.monotonic()
    await enforce_rate_limit(services.rate_limiter, principal.org_id)

    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict) or not body.get("content"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No content provided for ingestion"
        )
    try:
        data = IngestRequest.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid ingestion payload") from exc
    if not data.content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Content is empty")

    policy = await services.policies.add_policy(
        principal.org_id,
        PolicyInput(
            title=data.title or "Uploaded policy",
            content=data.content,
            category=data.department,
            source="upload",
        ),
    )
    # Indexing for retrieval is supporting work; the stored policy is the primary result.
    chunk_ids = await run_best_effort(
        "index_document",
        lambda: services.ingestor.ingest_document(
            data.content,
            {
                "org_id": principal.org_id,
                "policy_id": policy.id,
                "title": policy.title,
                "department": data.department,
                "tags": data.tags,
            },
        ),
        context={"org_id": principal.org_id, "policy_id": policy.id},
    )

    return JSONResponse(
        content={
            "success": True,
            "policy": policy.model_dump(mode="json", by_alias=True),
            "chunks": len(chunk_ids or []),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration": int((time.monotonic() - start) * 1000),
        },
        status_code=status.HTTP_201_CREATED,
    )
