"""
API v1 gateway routes - callbacks for the external delivery relay.

The relay receives record ids from issuance, delivers a code, then reports
that code back here.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from src.api.dependencies import get_code_router
from src.api.models import ErrorResponse, OkResponse, RecordResponse, SetCodeRequest
from src.domain.codes import CodeAssignmentRouter

router = APIRouter(prefix="/gateway")


@router.post(
    "/set-code",
    response_model=OkResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed code, or record used or expired"},
        404: {"model": ErrorResponse, "description": "Record not found"},
    },
)
def set_code(
    request_data: SetCodeRequest,
    codes: CodeAssignmentRouter = Depends(get_code_router),
) -> OkResponse:
    codes.assign_code(request_data.record_id, request_data.code)
    return OkResponse()


@router.get(
    "/records/{record_id}",
    response_model=RecordResponse,
    responses={404: {"model": ErrorResponse, "description": "Record not found"}},
)
def get_record(
    record_id: UUID,
    codes: CodeAssignmentRouter = Depends(get_code_router),
) -> RecordResponse:
    summary = codes.describe(record_id)
    return RecordResponse(
        id=summary.id,
        type=summary.type,
        email=summary.email,
        expires_at=summary.expires_at,
        is_used=summary.is_used,
        created_at=summary.created_at,
    )
