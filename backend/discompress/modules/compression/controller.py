"""Size-targeting controller.

Drives the encoder through a fixed schedule of shrinking bitrates until an
output lands under the byte budget or the schedule runs out.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Protocol

from discompress.core.metrics import ENCODE_ATTEMPTS_TOTAL
from discompress.core.tracing import add_span_attributes, create_span
from discompress.modules.compression.ffmpeg import EncodeParams
from discompress.modules.compression.models import Attempt, CompressionJob, EncodeError
from discompress.modules.compression.planner import (
    DEFAULT_RETRY_FLOOR_VIDEO_KBPS,
    BitratePlan,
    pass_video_kbps,
)
from discompress.modules.compression.schemas import PassSchedule

logger = logging.getLogger(__name__)


class Encoder(Protocol):
    async def encode(self, params: EncodeParams) -> None: ...


class SizeTargetingController:
    """Multi-pass encoder loop.

    When no pass fits the budget the controller returns the *last* pass,
    not the smallest file seen.
    """

    def __init__(
        self,
        encoder: Encoder,
        output_dir: Path,
        schedule: PassSchedule,
        max_width: int,
        retry_floor_kbps: int = DEFAULT_RETRY_FLOOR_VIDEO_KBPS,
        stat: Callable[[Path], int] = os.path.getsize,
    ):
        self.encoder = encoder
        self.output_dir = output_dir
        self.schedule = schedule
        self.max_width = max_width
        self.retry_floor_kbps = retry_floor_kbps
        self.stat = stat

    async def run(self, job: CompressionJob, plan: BitratePlan) -> Attempt:
        """Encode ``job`` until it fits ``job.target_bytes``.

        Every attempt is recorded on the job before the encoder runs, so
        the job's cleanup set always covers files a failed pass may have
        left behind.

        Returns:
            The attempt whose output is delivered

        Raises:
            EncodeError: If any pass fails; earlier passes stay on the job
        """
        final = None
        for index, factor in self.schedule.steps():
            attempt = Attempt(
                index=index,
                factor=factor,
                video_kbps=pass_video_kbps(plan, index, factor, self.retry_floor_kbps),
                audio_kbps=plan.audio_kbps,
                max_width=self.max_width,
                output_path=job.output_path_for(self.output_dir, index),
            )
            job.attempts.append(attempt)

            await self._run_attempt(job, attempt)
            final = attempt
            job.final_output_path = attempt.output_path

            if attempt.within_budget(job.target_bytes):
                break

        return final

    async def _run_attempt(self, job: CompressionJob, attempt: Attempt) -> None:
        params = EncodeParams(
            input_path=job.input_path,
            output_path=attempt.output_path,
            video_kbps=attempt.video_kbps,
            audio_kbps=attempt.audio_kbps,
            max_width=attempt.max_width,
        )

        with create_span(
            "compression.encode_attempt",
            attributes={
                "job.id": job.job_id,
                "attempt.index": attempt.index,
                "attempt.video_kbps": attempt.video_kbps,
            },
        ):
            try:
                await self.encoder.encode(params)
            except EncodeError:
                ENCODE_ATTEMPTS_TOTAL.labels(outcome="error").inc()
                raise

            try:
                attempt.result_bytes = await asyncio.to_thread(self.stat, attempt.output_path)
            except OSError as e:
                ENCODE_ATTEMPTS_TOTAL.labels(outcome="error").inc()
                raise EncodeError("Encoder reported success but produced no output", diagnostic=str(e)) from e

            within = attempt.within_budget(job.target_bytes)
            ENCODE_ATTEMPTS_TOTAL.labels(outcome="within_target" if within else "over_target").inc()
            add_span_attributes({"attempt.result_bytes": attempt.result_bytes})

        logger.info(
            "Encode attempt finished",
            extra={
                "job_id": job.job_id,
                "attempt": attempt.index,
                "factor": attempt.factor,
                "video_kbps": attempt.video_kbps,
                "result_bytes": attempt.result_bytes,
                "target_bytes": job.target_bytes,
                "within_target": within,
            },
        )
