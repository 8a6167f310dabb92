"""API router for video compression.

POST /api/upload takes a multipart ``video`` field and streams back the
re-encoded MP4.
"""

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from fastapi.responses import PlainTextResponse, StreamingResponse

from discompress.modules.compression.models import CompressionJob, EncodeError, ProbeError, UploadError
from discompress.modules.compression.service import CompressionService, describe_failure

router = APIRouter(prefix="/api", tags=["compression"])

FAILURE_MESSAGE = "Compression failed. Try a shorter clip or lower source bitrate."
STREAM_CHUNK_SIZE = 64 * 1024


def get_compression_service(request: Request) -> CompressionService:
    """Service shared by every request, created by the app factory."""
    return request.app.state.compression_service


async def iter_file(path: Path, on_close: Callable[[], None]) -> AsyncIterator[bytes]:
    """Yield a file in chunks; ``on_close`` runs once streaming stops for any reason."""
    try:
        with open(path, "rb") as source:
            while True:
                chunk = await asyncio.to_thread(source.read, STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
    finally:
        on_close()


def build_download_response(job: CompressionJob, service: CompressionService) -> StreamingResponse:
    final = job.final_attempt
    headers = {
        "Content-Disposition": f'attachment; filename="{job.download_name}"',
        "X-Discompress-Attempts": str(len(job.attempts)),
        "X-Discompress-Within-Target": "true" if job.within_target else "false",
    }
    if final is not None and final.result_bytes is not None:
        headers["Content-Length"] = str(final.result_bytes)

    return StreamingResponse(
        iter_file(job.final_output_path, lambda: service.finish(job)),
        media_type="video/mp4",
        headers=headers,
    )


@router.post("/upload", status_code=status.HTTP_200_OK)
async def upload_video(
    video: Optional[UploadFile] = File(None),
    service: CompressionService = Depends(get_compression_service),
):
    """Compress an uploaded video to fit the configured size budget."""
    if video is None:
        raise UploadError("No file uploaded", status_code=status.HTTP_400_BAD_REQUEST)

    job = await service.receive_upload(video)

    try:
        await service.compress(job)
    except (ProbeError, EncodeError) as e:
        describe_failure(job, e)
        return PlainTextResponse(FAILURE_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return build_download_response(job, service)
