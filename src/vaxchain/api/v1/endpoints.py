from typing import List

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from vaxchain.core.errors import StoreError
from vaxchain.core.schemas import BlockRead, ChainVerification
from vaxchain.services.chain_service import ChainService, block_to_api

logger = structlog.get_logger(__name__)

DATABASE_ERROR_BODY = {
    "error": "Database error",
    "message": "Failed to fetch blockchain data",
}


def get_chain_service(request: Request) -> ChainService:
    """Dependency that provides the ChainService built during startup."""
    return request.app.state.chain_service


router = APIRouter()


@router.get("/blocks/{batch_no}", response_model=List[BlockRead])
async def get_blocks(
    batch_no: str,
    chain_service: ChainService = Depends(get_chain_service),
):
    """Blocks of a batch in ascending index; an unknown batch gives ``[]``."""
    try:
        records = await chain_service.fetch_lineage(batch_no)
    except StoreError as exc:
        logger.error("blocks_fetch_failed", batch_no=batch_no, error=str(exc))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=DATABASE_ERROR_BODY)
    return [block_to_api(record) for record in records]


@router.get("/blocks/{batch_no}/verify", response_model=ChainVerification)
async def verify_blocks(
    batch_no: str,
    check_payload: bool = False,
    chain_service: ChainService = Depends(get_chain_service),
):
    """Recompute the batch's hash chain and report the first break, if any."""
    try:
        result = await chain_service.verify_lineage(batch_no, check_payload=check_payload)
    except StoreError as exc:
        logger.error("blocks_verify_failed", batch_no=batch_no, error=str(exc))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=DATABASE_ERROR_BODY)
    return {"batch_no": batch_no, **result.to_dict()}
