from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import asyncio
import logging
import os

import requests
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import RepositoryWriteFailed, UploadFailed, UploadTimeout
from app.core.executor import run_sync
from app.db.database import SessionLocal
from app.repositories.document_repository import DocumentRepository
from app.schemas.document import DocumentResponse, UploadReport

logger = logging.getLogger(__name__)

UPLOAD_ACTIONS = ["saveAsData", "createChunks", "ingestRag", "makeDownloadable", "extractText"]


def extract_file_id(ack: Dict[str, Any]) -> Optional[str]:
    """Remote identifier from an upload acknowledgement: key, fileId, id, data.fileId or data.id"""
    inner = ack.get("data") if isinstance(ack.get("data"), dict) else {}
    for value in (ack.get("key"), ack.get("fileId"), ack.get("id"), inner.get("fileId"), inner.get("id")):
        if value:
            return str(value)
    return None


class RemoteKnowledgeSync:
    """
    Mirrors documents into the remote RAG store.

    The remote identifier is cached on the document record, so each document
    is uploaded at most once as long as the upload succeeded.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        document_repository: Optional[DocumentRepository] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        concurrency: Optional[int] = None,
        request_timeout: Optional[float] = None,
        upload_timeout: Optional[float] = None,
        processing_wait: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.document_repository = document_repository or DocumentRepository()
        self.base_url = (base_url or settings.REMOTE_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.REMOTE_API_KEY
        self.concurrency = concurrency or settings.REMOTE_UPLOAD_CONCURRENCY
        self.request_timeout = request_timeout or settings.REMOTE_REQUEST_TIMEOUT
        self.upload_timeout = upload_timeout or settings.REMOTE_UPLOAD_TIMEOUT
        self.processing_wait = (
            processing_wait if processing_wait is not None else settings.REMOTE_PROCESSING_WAIT_SECONDS
        )

    async def ensure_uploaded(self, documents: Sequence[DocumentResponse]) -> List[str]:
        """
        Make sure every document has a remote identifier.

        Cached identifiers are reused; the rest are uploaded concurrently.
        Failed uploads are logged and left out of the result.

        Args:
            documents: Documents to ground on

        Returns:
            Remote identifiers in input order, without the failed documents
        """
        logger.info(f"Ensuring {len(documents)} documents are in the remote knowledge store")
        reports = await self._upload_many(documents)

        file_ids = [report.file_id for report in reports if report.success and report.file_id]
        fresh = sum(1 for doc, report in zip(documents, reports) if report.success and not doc.external_file_id)

        if fresh and self.processing_wait > 0:
            logger.info(f"Waiting {self.processing_wait:g}s for the remote store to process {fresh} uploads")
            await asyncio.sleep(self.processing_wait)

        logger.info(f"{len(file_ids)} of {len(documents)} documents available for grounding")
        return file_ids

    async def upload_all(self, assistant_id: str) -> List[UploadReport]:
        """Upload every document of an assistant and report the outcome of each"""
        with self.session_factory() as db:
            documents = await self.document_repository.list_by_assistant(assistant_id, db)
        return await self._upload_many(documents)

    async def _upload_many(self, documents: Sequence[DocumentResponse]) -> List[UploadReport]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(document: DocumentResponse) -> UploadReport:
            async with semaphore:
                return await self.upload_document(document)

        results = await asyncio.gather(*(bounded(doc) for doc in documents), return_exceptions=True)

        reports = []
        for document, result in zip(documents, results):
            if isinstance(result, BaseException):
                logger.error(f"Upload of {document.filename} raised: {result}", exc_info=result)
                result = self._failure(document, str(result))
            reports.append(result)
        return reports

    async def upload_document(self, document: DocumentResponse) -> UploadReport:
        """
        Upload one document unless it already has a remote identifier.

        Never raises for upload problems; the report carries the error.
        """
        if document.external_file_id:
            logger.debug(f"Using cached file ID for {document.filename}: {document.external_file_id}")
            return UploadReport(
                document_id=document.id,
                filename=document.filename,
                success=True,
                file_id=document.external_file_id,
                size=document.file_size,
            )

        try:
            file_id, size = await run_sync(self._upload, document)
        except UploadFailed as e:
            logger.error(f"Failed to upload {document.filename}: {e}")
            return self._failure(document, str(e))
        except Exception as e:
            logger.error(f"Unexpected error uploading {document.filename}: {e}", exc_info=True)
            return self._failure(document, str(e))

        try:
            with self.session_factory() as db:
                await self.document_repository.set_external_id(document.id, file_id, db)
        except RepositoryWriteFailed as e:
            # The upload stands; the document is uploaded again on the next request
            logger.warning(f"Could not cache file ID {file_id} for {document.filename}: {e}")
        logger.info(f"Uploaded {document.filename}, got file ID: {file_id}")
        return UploadReport(document_id=document.id, filename=document.filename, success=True, file_id=file_id, size=size)

    @staticmethod
    def _failure(document: DocumentResponse, error: str) -> UploadReport:
        return UploadReport(
            document_id=document.id,
            filename=document.filename,
            success=False,
            error=error,
            size=document.file_size,
        )

    def _payload_for(self, document: DocumentResponse) -> Tuple[bytes, str, str]:
        """Original bytes when the source file still exists, else the extracted text"""
        if document.file_path and os.path.isfile(document.file_path):
            with open(document.file_path, "rb") as f:
                return f.read(), document.mime_type, document.filename

        stem, _ = os.path.splitext(document.filename)
        return (document.content or "").encode("utf-8"), "text/plain", f"{stem}.txt"

    def _upload(self, document: DocumentResponse) -> Tuple[str, int]:
        try:
            body, content_type, name = self._payload_for(document)
        except OSError as e:
            raise UploadFailed(document.filename, f"could not read source file: {e}") from e

        request = {
            "data": {
                "type": content_type,
                "name": name,
                "knowledgeBase": settings.REMOTE_KNOWLEDGE_BASE,
                "tags": settings.REMOTE_UPLOAD_TAG_LIST,
                "data": {},
                "actions": [{"name": action} for action in UPLOAD_ACTIONS],
                "ragOn": True,
            }
        }

        try:
            response = requests.post(
                f"{self.base_url}/files/upload",
                json=request,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.request_timeout,
            )
        except requests.Timeout as e:
            raise UploadTimeout(name, self.request_timeout) from e
        except requests.RequestException as e:
            raise UploadFailed(name, str(e)) from e

        if not response.ok:
            raise UploadFailed(name, f"status {response.status_code}: {response.text[:200]}")

        try:
            ack = response.json()
        except ValueError as e:
            raise UploadFailed(name, "acknowledgement is not JSON") from e
        if not isinstance(ack, dict):
            raise UploadFailed(name, "malformed acknowledgement")
        if not ack.get("success"):
            raise UploadFailed(name, str(ack.get("error") or "upload rejected"))

        upload_url = ack.get("uploadUrl")
        if upload_url:
            try:
                transfer = requests.put(
                    upload_url,
                    data=body,
                    headers={"Content-Type": content_type},
                    timeout=self.upload_timeout,
                )
            except requests.Timeout as e:
                raise UploadTimeout(name, self.upload_timeout) from e
            except requests.RequestException as e:
                raise UploadFailed(name, str(e)) from e
            if not transfer.ok:
                raise UploadFailed(name, f"transfer returned status {transfer.status_code}")

        file_id = extract_file_id(ack)
        if not file_id:
            raise UploadFailed(name, "no file identifier in acknowledgement")
        return file_id, len(body)
