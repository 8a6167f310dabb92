"""Service layer for compression jobs.

Receives an upload, runs probe -> plan -> size-targeted encode inside an
admission queue slot, and hands the job back for delivery. Every file a
job creates is scheduled for deferred deletion exactly once.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from discompress.core.config import Settings
from discompress.core.logging import log_error, log_info, log_warning
from discompress.core.metrics import (
    COMPRESSION_JOB_DURATION_SECONDS,
    COMPRESSION_JOBS_TOTAL,
    COMPRESSION_OUTPUT_BYTES,
)
from discompress.core.tracing import add_span_attributes, create_span
from discompress.modules.compression.cleanup import CleanupScheduler, remove_files
from discompress.modules.compression.controller import SizeTargetingController
from discompress.modules.compression.ffmpeg import FFmpegTranscoder
from discompress.modules.compression.models import (
    CompressionError,
    CompressionJob,
    EncodeError,
    JobStatus,
    ProbeError,
    UploadError,
    new_job_id,
    sanitize_filename,
)
from discompress.modules.compression.planner import plan_bitrate
from discompress.modules.compression.queue import AdmissionQueue
from discompress.modules.compression.schemas import PassSchedule

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


class CompressionService:
    """Orchestrates a compression job from upload to cleanup."""

    def __init__(
        self,
        settings: Settings,
        transcoder: Optional[FFmpegTranscoder] = None,
        queue: Optional[AdmissionQueue] = None,
        cleanup: Optional[CleanupScheduler] = None,
    ):
        """Initialize service.

        Args:
            settings: Application settings
            transcoder: Probe/encode backend, ffmpeg by default
            queue: Admission queue shared by all jobs
            cleanup: Deferred deletion scheduler
        """
        self.settings = settings
        self.tmp_dir = Path(settings.TMP_DIR)
        self.transcoder = transcoder or FFmpegTranscoder(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            preset=settings.ENCODE_PRESET,
            threads=settings.ENCODER_THREADS,
            maxrate_factor=settings.MAXRATE_FACTOR,
            bufsize_factor=settings.BUFSIZE_FACTOR,
        )
        self.queue = queue or AdmissionQueue(capacity=settings.MAX_CONCURRENT_ENCODES)
        self.cleanup = cleanup or CleanupScheduler(delay_seconds=settings.CLEANUP_DELAY_SECONDS)
        self.controller = SizeTargetingController(
            encoder=self.transcoder,
            output_dir=self.tmp_dir,
            schedule=PassSchedule(factors=settings.PASS_FACTORS),
            max_width=settings.MAX_WIDTH,
            retry_floor_kbps=settings.RETRY_FLOOR_VIDEO_KBPS,
        )

    def ensure_tmp_dir(self) -> None:
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

    async def receive_upload(self, upload: UploadFile) -> CompressionJob:
        """Persist an uploaded file into the temp directory and open a job.

        Raises:
            UploadError: If the upload exceeds the configured size cap
        """
        self.ensure_tmp_dir()
        requested_name = sanitize_filename(upload.filename)
        input_path = self.tmp_dir / f"upload_{new_job_id()}"
        limit = self.settings.max_upload_bytes

        received = 0
        try:
            with open(input_path, "wb") as out:
                while True:
                    chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    received += len(chunk)
                    if received > limit:
                        raise UploadError("File too large", status_code=413)
                    await asyncio.to_thread(out.write, chunk)
        except BaseException:
            remove_files([input_path])
            raise
        finally:
            await upload.close()

        job = CompressionJob(
            input_path=input_path,
            requested_name=requested_name,
            target_bytes=self.settings.target_bytes,
        )
        log_info(
            logger,
            "Upload received",
            job_id=job.job_id,
            requested_name=job.requested_name,
            upload_bytes=received,
        )
        return job

    async def compress(self, job: CompressionJob) -> CompressionJob:
        """Probe and encode ``job`` while holding an admission slot.

        The slot is released as soon as encoding ends, before delivery.
        On any failure the job's files are scheduled for cleanup and the
        error propagates.

        Raises:
            ProbeError: If the input is not readable media
            EncodeError: If any encode pass fails
        """
        log_info(
            logger,
            "Job queued",
            job_id=job.job_id,
            queue_running=self.queue.running,
            queue_pending=self.queue.pending,
        )
        try:
            async with self.queue.slot():
                await self._process(job)
        except BaseException as e:
            job.status = JobStatus.FAILED
            if isinstance(e, ProbeError):
                COMPRESSION_JOBS_TOTAL.labels(status="probe_error").inc()
            elif isinstance(e, EncodeError):
                COMPRESSION_JOBS_TOTAL.labels(status="encode_error").inc()
            else:
                COMPRESSION_JOBS_TOTAL.labels(status="aborted").inc()
            self.finish(job)
            raise

        job.status = JobStatus.COMPLETED
        final = job.final_attempt
        COMPRESSION_OUTPUT_BYTES.observe(final.result_bytes)
        if job.within_target:
            COMPRESSION_JOBS_TOTAL.labels(status="within_target").inc()
            log_info(
                logger,
                "Job completed",
                job_id=job.job_id,
                attempts=len(job.attempts),
                result_bytes=final.result_bytes,
            )
        else:
            COMPRESSION_JOBS_TOTAL.labels(status="over_target").inc()
            log_warning(
                logger,
                "Job completed above target after all passes",
                job_id=job.job_id,
                attempts=len(job.attempts),
                result_bytes=final.result_bytes,
                target_bytes=job.target_bytes,
            )
        return job

    async def _process(self, job: CompressionJob) -> None:
        job.status = JobStatus.RUNNING
        log_info(logger, "Job admitted", job_id=job.job_id)
        started = time.perf_counter()
        try:
            with create_span("compression.probe", attributes={"job.id": job.job_id}):
                info = await self.transcoder.probe(job.input_path)
                job.duration_seconds = info.effective_duration
                add_span_attributes({"media.duration": job.duration_seconds})

            plan = plan_bitrate(
                job.duration_seconds,
                job.target_bytes,
                self.settings.AUDIO_KBPS,
                floor_total_kbps=self.settings.FLOOR_TOTAL_KBPS,
                floor_video_kbps=self.settings.FLOOR_VIDEO_KBPS,
            )
            log_info(
                logger,
                "Bitrate planned",
                job_id=job.job_id,
                duration_seconds=job.duration_seconds,
                total_kbps=plan.total_kbps,
                initial_video_kbps=plan.initial_video_kbps,
            )

            await self.controller.run(job, plan)
        finally:
            COMPRESSION_JOB_DURATION_SECONDS.observe(time.perf_counter() - started)

    def finish(self, job: CompressionJob) -> None:
        """Schedule deletion of every file the job owns. Safe to call twice."""
        if job.cleanup_scheduled:
            return
        job.cleanup_scheduled = True
        try:
            self.cleanup.schedule(job.cleanup_paths(), job_id=job.job_id)
        except RuntimeError:
            # No running event loop left to wait on; delete right away.
            remove_files(job.cleanup_paths())


def describe_failure(job: CompressionJob, error: CompressionError) -> None:
    """Log the internal diagnostic of a failed job; callers only see a fixed message."""
    log_error(
        logger,
        "Compression failed",
        exception=error,
        job_id=job.job_id,
        attempts=len(job.attempts),
        diagnostic=getattr(error, "diagnostic", ""),
    )
