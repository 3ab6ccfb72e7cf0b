"""
Budget-aware driver of the custom-label oracle.

One invocation classifies as many frames as fit before its deadline, one
throughput-sized batch (one second of calls) at a time, persisting every
Detection and then the cursor so a later invocation resumes where this one
stopped.
"""

import asyncio
import time
from typing import Callable, List, Optional, Sequence

from loguru import logger

from framelabel.exceptions import ValidationException
from framelabel.providers.base import ClassificationProvider, LeaseStore, ProgressStore, StorageProvider
from framelabel.utils.error_handler import retry_async
from .lease import SECONDS_2MINS, SECONDS_30, refresh_lease
from .models import Detection, Frame, ImageRef, InferenceResult, InferenceStatus, ModelRef

Clock = Callable[[], float]


class RateBudgetedInferenceRunner:
    """
    Classify an ordered frame list against a leased model within a deadline.

    Args:
        classification: the oracle
        storage: where Detection JSON documents are written
        lease_store: compare-and-swap store of the model lease
        throughput: frames per batch (``inference units * per-unit TPS``)
        deadline: absolute epoch seconds this invocation must return by
        progress_store: optional cursor store for resuming across invocations
        clock: returns epoch seconds; read once per batch
    """

    def __init__(
        self,
        classification: ClassificationProvider,
        storage: StorageProvider,
        lease_store: LeaseStore,
        throughput: int,
        deadline: float,
        progress_store: Optional[ProgressStore] = None,
        clock: Clock = time.time,
        deadline_margin: int = 30,
        lease_threshold: int = SECONDS_30,
        lease_extension: int = SECONDS_2MINS,
        min_confidence: float = 50.0,
        classify_retries: int = 3,
        write_retries: int = 10,
        retry_initial_delay: float = 1.0,
    ):
        if throughput < 1:
            raise ValidationException(f"throughput must be >= 1, got {throughput}")
        self.classification = classification
        self.storage = storage
        self.lease_store = lease_store
        self.progress_store = progress_store
        self.throughput = throughput
        self.deadline = deadline
        self.clock = clock
        self.deadline_margin = deadline_margin
        self.lease_threshold = lease_threshold
        self.lease_extension = lease_extension
        self.min_confidence = min_confidence
        self.classify_retries = classify_retries
        self.write_retries = write_retries
        self.retry_initial_delay = retry_initial_delay

    async def _classify_frame(
        self,
        frame: Frame,
        model: ModelRef,
        image: ImageRef,
        output_bucket: str,
        output_prefix: str,
    ) -> Detection:
        labels = await retry_async(
            self.classification.classify,
            image,
            model,
            self.min_confidence,
            retries=self.classify_retries,
            initial_delay=self.retry_initial_delay,
        )
        detection = Detection(
            frame_number=frame.frame_number,
            timestamp_millis=frame.timestamp_millis,
            timecode_smpte=frame.timecode_smpte,
            custom_labels=labels,
        )
        await retry_async(
            self.storage.put_json,
            output_bucket,
            f"{output_prefix}/{frame.frame_number}.json",
            detection.to_json(),
            retries=self.write_retries,
            initial_delay=self.retry_initial_delay,
        )
        return detection

    async def _run_batch(self, batch: Sequence[Frame], model, image_ref, output_bucket, output_prefix) -> List[Detection]:
        results = await asyncio.gather(
            *[
                self._classify_frame(frame, model, image_ref(frame), output_bucket, output_prefix)
                for frame in batch
            ],
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results

    async def _resume_cursor(self, cursor: int, unit_id: Optional[str], total: int) -> int:
        if self.progress_store is not None and unit_id:
            if cursor == 0:
                # a run starting at 0 owns the unit; cursors of earlier runs do not apply
                await self.progress_store.put(unit_id, 0)
            else:
                stored = await self.progress_store.get(unit_id)
                if stored > cursor:
                    logger.info(f"{unit_id}: resuming from stored cursor {stored} (requested {cursor})")
                    cursor = stored
        if not 0 <= cursor <= total:
            raise ValidationException(f"cursor {cursor} outside [0, {total}]")
        return cursor

    async def run(
        self,
        frames: Sequence[Frame],
        model: ModelRef,
        image_ref: Callable[[Frame], ImageRef],
        output_bucket: str,
        output_prefix: str,
        lease_expiry: int,
        cursor: int = 0,
        unit_id: Optional[str] = None,
    ) -> InferenceResult:
        """
        Classify ``frames[cursor:]`` until done or the deadline margin is reached.

        Returns COMPLETED with ``cursor == len(frames)`` when every frame is
        stored, otherwise PROCESSING with the cursor to resume from. Oracle or
        storage failures that outlive their retries propagate and leave the
        cursor at the last fully persisted batch.
        """
        total = len(frames)
        cursor = await self._resume_cursor(cursor, unit_id, total)
        processed = 0

        while cursor < total:
            now = self.clock()
            if self.deadline - now <= self.deadline_margin:
                logger.info(f"deadline in {self.deadline - now:.0f}s, stopping at {cursor}/{total}")
                break

            lease_expiry = await refresh_lease(
                self.lease_store,
                model.resource_id,
                lease_expiry,
                now,
                threshold=self.lease_threshold,
                extension=self.lease_extension,
            )

            batch = frames[cursor:cursor + self.throughput]
            await self._run_batch(batch, model, image_ref, output_bucket, output_prefix)

            cursor += len(batch)
            processed += len(batch)
            if self.progress_store is not None and unit_id:
                await self.progress_store.put(unit_id, cursor)
            logger.debug(f"classified {cursor}/{total}")

        status = InferenceStatus.COMPLETED if cursor >= total else InferenceStatus.PROCESSING
        logger.info(f"inference {status.value}: cursor={cursor}/{total}, processed={processed}")
        return InferenceResult(status=status, cursor=cursor, lease_expiry=lease_expiry, processed=processed)
