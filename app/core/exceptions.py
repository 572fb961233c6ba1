"""
Error taxonomy for the document pipeline and chat flow.

Failures local to one document (UnsupportedFormat, ExtractionFailed,
UploadFailed) are caught by the batch operations; the rest surface to the
caller of the operation that raised them.
"""
from typing import Optional


class AssistantPipelineError(Exception):
    """Base class for all application errors"""


class UnsupportedFormat(AssistantPipelineError):
    """No extractor exists for the media type"""

    def __init__(self, media_type: str, file_path: Optional[str] = None):
        self.media_type = media_type
        self.file_path = file_path
        super().__init__(f"Unsupported file type: {media_type}" + (f" ({file_path})" if file_path else ""))


class ExtractionFailed(AssistantPipelineError):
    """The parser for a supported media type failed"""

    def __init__(self, file_path: str, cause: Exception):
        self.file_path = file_path
        self.cause = cause
        super().__init__(f"Failed to extract text from {file_path}: {cause}")


class FolderNotFound(AssistantPipelineError):
    def __init__(self, folder_path: str):
        self.folder_path = folder_path
        super().__init__(f"Folder does not exist: {folder_path}")


class UploadFailed(AssistantPipelineError):
    """Remote upload of a single document failed"""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Upload of {filename} failed: {reason}")


class UploadTimeout(UploadFailed):
    def __init__(self, filename: str, timeout: float):
        self.timeout = timeout
        super().__init__(filename, f"timed out after {timeout:g} seconds")


class RemoteServiceError(AssistantPipelineError):
    """Remote completion service unreachable or returned a non-success status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RemoteResponseUnrecognized(AssistantPipelineError):
    """None of the known response shapes carried generated text"""


class RepositoryWriteFailed(AssistantPipelineError):
    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Repository write failed during {operation}: {cause}")


class AssistantNotFound(AssistantPipelineError):
    def __init__(self, assistant_id: str):
        self.assistant_id = assistant_id
        super().__init__(f"Assistant not found or inactive: {assistant_id}")


class AssistantAlreadyExists(AssistantPipelineError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Assistant with slug '{slug}' already exists")


class ConversationNotFound(AssistantPipelineError):
    pass


class InvalidFeedback(AssistantPipelineError):
    pass
