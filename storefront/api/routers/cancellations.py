"""
Cancellation request API router.

Requests are filed as multipart forms so a post-delivery video can travel
with the filing. A video that fails to store leaves the request in place;
the client retries with POST /cancellation-requests/{request_id}/video.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from storefront.api.dependencies import get_cancellation_use_case, get_user_id
from storefront.domain import (
    CancellationEvidence,
    CancellationRequest,
    VideoAttachment,
)
from storefront.exceptions import InvalidEvidence
from storefront.use_cases import CancellationUseCase

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_video(upload: UploadFile) -> Optional[VideoAttachment]:
    """Turn an uploaded file into a VideoAttachment; an empty part is none.

    Content checks are left to the use case, which knows whether the order
    takes evidence at all.
    """
    data = await upload.read()
    if not data:
        return None
    return VideoAttachment(
        filename=upload.filename or "video",
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )


@router.post("", response_model=CancellationRequest, status_code=201)
async def create_cancellation_request(
    order_id: str = Form(...),
    reason: str = Form(...),
    upi_id: Optional[str] = Form(default=None),
    video_url: Optional[str] = Form(default=None),
    video: Optional[UploadFile] = File(default=None),
    user_id: str = Depends(get_user_id),
    cancellations: CancellationUseCase = Depends(get_cancellation_use_case),
) -> CancellationRequest:
    logger.info(
        "Cancellation request submitted",
        extra={
            "order_id": order_id,
            "user_id": user_id,
            "has_video": video is not None or bool(video_url),
        },
    )
    attachment = await read_video(video) if video is not None else None
    evidence = CancellationEvidence(
        upi_id=upi_id, video_url=video_url, video=attachment
    )
    return await cancellations.create_request(
        order_id, user_id, reason, evidence
    )


@router.post("/{request_id}/video", response_model=CancellationRequest)
async def upload_cancellation_video(
    request_id: str,
    video: UploadFile = File(...),
    user_id: str = Depends(get_user_id),
    cancellations: CancellationUseCase = Depends(get_cancellation_use_case),
) -> CancellationRequest:
    attachment = await read_video(video)
    if attachment is None:
        raise InvalidEvidence("Video file cannot be empty")
    return await cancellations.upload_video(request_id, user_id, attachment)
