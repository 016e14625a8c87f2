"""
Background conversion of a questions/solutions document pair.

`start` claims the pair, submits both PDFs to the OCR service and returns.
Polling runs in a tracked asyncio task per job. Every state change is written
to the record store, so a restarted process can pick up a job with `resume`.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from config import (
    MAX_POLL_ATTEMPTS,
    POLL_INTERVAL_SECONDS,
    PROGRESS_POLL_BASE,
    PROGRESS_POLL_SPAN,
)
from pipeline.models import (
    ConversionJob,
    ExtractedImage,
    SIDES,
    SIDE_QUESTIONS,
    SIDE_SOLUTIONS,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PROCESSING,
    utc_now,
)
from pipeline.validator import Validator
from utils.archive_utils import read_conversion_archive
from utils.mathpix_client import COMPLETED, ERROR

log = logging.getLogger(__name__)


class ConversionError(Exception):
    """Base class for conversion failures that end a job."""


class ConversionFailedError(ConversionError):
    """The OCR service reported an error for one side."""


class ConversionTimeoutError(ConversionError):
    """The attempt budget ran out before both sides finished."""


class DocumentNotFoundError(LookupError):
    pass


class DocumentBusyError(RuntimeError):
    """The pair is already processing or completed."""


def image_storage_path(document_id: str, side: str, filename: str) -> str:
    return f"{document_id}/{side}/{filename}"


def poll_progress(done: int, total: int = len(SIDES)) -> int:
    """Progress while polling: 40% base plus up to 50% for finished sides."""
    return PROGRESS_POLL_BASE + (PROGRESS_POLL_SPAN * done) // total


class ConversionOrchestrator:
    """Runs OCR conversion of document pairs as supervised background tasks."""

    def __init__(
        self,
        store,
        object_store,
        ocr_client,
        validator: Optional[Validator] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_POLL_ATTEMPTS,
    ):
        """
        Args:
            store: Record store (see database.RecordStore)
            object_store: Object store with download(path) and upload(path, data, content_type)
            ocr_client: Conversion service with submit, get_status, download_result_archive
            validator: Title validator, defaults to Validator()
            poll_interval: Seconds between polling cycles
            max_attempts: Polling cycles before the job times out
        """
        self.store = store
        self.object_store = object_store
        self.ocr_client = ocr_client
        self.validator = validator or Validator()
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._tasks: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _call(func, *args, **kwargs):
        """Run a blocking collaborator call off the event loop."""
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _log(self, job_id: str, level: str, message: str, details: Optional[dict] = None):
        getattr(log, level)("[job %s] %s", job_id, message)
        await self._call(self.store.log_job_event, job_id, level, message, details)

    async def _progress(self, job_id: str, percentage: int, step: str):
        await self._call(self.store.update_job, job_id, progress_percentage=percentage, current_step=step)

    async def _fail(self, job_id: Optional[str], document_id: str, message: str):
        now = utc_now()
        if job_id is not None:
            await self._call(
                self.store.update_job, job_id,
                status=STATUS_FAILED, error_message=message, current_step="Failed", completed_at=now,
            )
        await self._call(
            self.store.update_document_pair, document_id,
            status=STATUS_FAILED, error_message=message, processing_completed_at=now,
        )
        if job_id is not None:
            await self._log(job_id, "error", message)
        else:
            log.error("[document %s] %s", document_id, message)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start(self, document_id: str) -> ConversionJob:
        """
        Claim a document pair and submit both files for conversion.

        Returns as soon as both files are submitted; polling continues in the
        background. Raises DocumentNotFoundError or DocumentBusyError without
        touching any state, and re-raises submission failures after marking
        the job failed.
        """
        document = await self._call(self.store.get_document_pair, document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document pair {document_id} not found")

        if not await self._call(self.store.claim_document_pair, document_id):
            current = await self._call(self.store.get_document_pair, document_id)
            raise DocumentBusyError(f"Document pair {document_id} is already {current.status}")

        job = None
        try:
            job = await self._call(self.store.create_job, document_id)
            await self._call(self.store.update_document_pair, document_id, current_job_id=job.id)
            await self._call(
                self.store.update_job, job.id,
                status=STATUS_PROCESSING, started_at=utc_now(),
                progress_percentage=10, current_step="Downloading source files",
            )
            await self._log(job.id, "info", "Conversion started", {"document_id": document_id})

            files = await asyncio.gather(
                *(self._call(self.object_store.download, document.file_path(side)) for side in SIDES)
            )
            await self._progress(job.id, 25, "Submitting documents for conversion")
            external_ids = await asyncio.gather(
                *(
                    self._call(self.ocr_client.submit, data, document.file_name(side))
                    for side, data in zip(SIDES, files)
                )
            )
            await self._call(
                self.store.update_job, job.id,
                questions_external_id=external_ids[0],
                solutions_external_id=external_ids[1],
                progress_percentage=PROGRESS_POLL_BASE,
                current_step="Waiting for conversion",
            )
            await self._log(
                job.id, "info", "Both documents submitted",
                {SIDE_QUESTIONS: external_ids[0], SIDE_SOLUTIONS: external_ids[1]},
            )
        except Exception as e:
            await self._fail(job.id if job else None, document_id, f"Submission failed: {e}")
            raise

        self._spawn(job.id, document_id)
        return await self._call(self.store.get_job, job.id)

    # ------------------------------------------------------------------
    # Supervision
    # ------------------------------------------------------------------

    def _spawn(self, job_id: str, document_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(job_id, document_id), name=f"conversion-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._forget(job_id, t))
        return task

    def _forget(self, job_id: str, task: asyncio.Task):
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    def is_running(self, job_id: str) -> bool:
        return job_id in self._tasks

    async def wait(self, job_id: str) -> Optional[ConversionJob]:
        """Wait for a job's background task (if any) and return the stored job."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})
        return await self._call(self.store.get_job, job_id)

    async def resume(self, job_id: str) -> bool:
        """
        Restart polling for a job left in `processing` by an earlier process.

        Returns False if the job is already being polled here.
        """
        if job_id in self._tasks:
            return False

        job = await self._call(self.store.get_job, job_id)
        if job is None:
            raise LookupError(f"Conversion job {job_id} not found")
        if job.status != STATUS_PROCESSING or not all(job.external_id(side) for side in SIDES):
            raise ValueError(f"Job {job_id} cannot be resumed from status {job.status}")

        await self._log(job_id, "info", "Polling resumed")
        self._spawn(job_id, job.document_id)
        return True

    async def resume_all(self) -> List[str]:
        """Resume every stored job that was submitted but never finished."""
        resumed = []
        for job in await self._call(self.store.get_jobs, STATUS_PROCESSING):
            if all(job.external_id(side) for side in SIDES) and await self.resume(job.id):
                resumed.append(job.id)
        return resumed

    async def shutdown(self):
        """Cancel running polls. Jobs stay `processing` and can be resumed later."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _run(self, job_id: str, document_id: str):
        try:
            await self._poll(job_id, document_id)
        except asyncio.CancelledError:
            log.info("[job %s] polling cancelled", job_id)
            raise
        except Exception as e:
            await self._fail(job_id, document_id, str(e))

    async def _poll(self, job_id: str, document_id: str):
        job = await self._call(self.store.get_job, job_id)
        external_ids = {side: job.external_id(side) for side in SIDES}
        texts: Dict[str, str] = {}

        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.poll_interval)

            pending = [side for side in SIDES if side not in texts]
            results = await asyncio.gather(
                *(self._call(self.ocr_client.get_status, external_ids[side]) for side in pending),
                return_exceptions=True,
            )

            statuses = {}
            for side, result in zip(pending, results):
                if isinstance(result, Exception):
                    await self._log(job_id, "warning", f"Status check failed for {side}: {result}")
                else:
                    statuses[side] = result

            for side, status in statuses.items():
                if status.status == ERROR:
                    detail = status.error_detail or "unknown error"
                    raise ConversionFailedError(f"{side.capitalize()} conversion failed: {detail}")

            for side, status in statuses.items():
                if status.status == COMPLETED:
                    texts[side] = await self._collect_side(job_id, document_id, side, external_ids[side])

            done = len(texts)
            await self._progress(
                job_id, poll_progress(done),
                f"Converting: {done}/{len(SIDES)} documents done (attempt {attempt}/{self.max_attempts})",
            )
            if done == len(SIDES):
                break
        else:
            unfinished = [side for side in SIDES if side not in texts]
            raise ConversionTimeoutError(
                f"Conversion timed out after {self.max_attempts} attempts; "
                f"not finished: {', '.join(unfinished)}"
            )

        await self._complete(job_id, document_id, texts)

    async def _collect_side(self, job_id: str, document_id: str, side: str, external_id: str) -> str:
        """Download one side's archive, upload its images and return its text."""
        data = await self._call(self.ocr_client.download_result_archive, external_id)
        archive = await self._call(read_conversion_archive, data)

        for image in archive.images:
            path = image_storage_path(document_id, side, image.filename)
            url = await self._call(self.object_store.upload, path, image.data, image.content_type)
            await self._call(
                self.store.record_image,
                ExtractedImage(document_id=document_id, side=side, original_filename=image.filename, storage_url=url),
            )

        await self._log(
            job_id, "info", f"{side.capitalize()} conversion complete",
            {"characters": len(archive.text), "images": len(archive.images)},
        )
        return archive.text

    async def _complete(self, job_id: str, document_id: str, texts: Dict[str, str]):
        document = await self._call(self.store.get_document_pair, document_id)
        validation = self.validator.validate_titles(texts[SIDE_QUESTIONS], document.expected_titles)
        if validation is not None:
            level = "info" if validation.is_valid else "warning"
            await self._log(job_id, level, validation.message, validation.details or None)

        now = utc_now()
        await self._call(
            self.store.update_document_pair, document_id,
            questions_text=texts[SIDE_QUESTIONS],
            solutions_text=texts[SIDE_SOLUTIONS],
            validation_status=validation.status if validation is not None else None,
            status=STATUS_COMPLETED,
            error_message=None,
            processing_completed_at=now,
        )
        await self._call(
            self.store.update_job, job_id,
            status=STATUS_COMPLETED, progress_percentage=100, current_step="Completed", completed_at=now,
        )
        await self._log(job_id, "info", "Conversion completed")


def create_orchestrator(store=None, object_store=None, ocr_client=None) -> ConversionOrchestrator:
    """Build an orchestrator, creating any collaborator not given from environment settings."""
    if store is None:
        from database import RecordStore

        store = RecordStore()
        store.init_db()
    if object_store is None:
        from firebase_storage import FirebaseObjectStore

        object_store = FirebaseObjectStore()
    if ocr_client is None:
        from utils.mathpix_client import MathpixClient

        ocr_client = MathpixClient()
    return ConversionOrchestrator(store, object_store, ocr_client)
