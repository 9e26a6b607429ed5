"""Data models for the Repair Assistant.

This module defines the core data structures passed between the importer, the
prompt assembler, the Gemini client and the CLI. All models use Pydantic for
type safety and validation. Loosely typed rows from imported files never leave
the normalizer; everything past that point is one of these models.
"""

import base64
import mimetypes
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .errors import InvalidRequestError


class CaseRecord(BaseModel):
    """Normalized historical repair case from the technician's archive.

    Attributes:
        id: Identifier generated at import time, unique within the batch.
        device_name: Device or model name ("unknown" when the row had none).
        category: Case category ("repair archive" when the row had none).
        fault_description: Observed symptom. Always non-empty.
        solution_text: Recorded analysis or fix, if the archive has one.
    """

    id: str
    device_name: str
    category: str
    fault_description: str
    solution_text: Optional[str] = None


class ImageAttachment(BaseModel):
    """Photo of the faulty hardware, sent inline with the request.

    Attributes:
        data: Raw image bytes.
        mime_type: Media type, always ``image/*``.
    """

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageAttachment":
        """Load an attachment from disk, guessing the media type from its name.

        Raises:
            InvalidRequestError: If the file is missing or not an image.
        """
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        if not mime_type or not mime_type.startswith("image/"):
            raise InvalidRequestError(f"Not an image file: {path.name}")
        if not path.is_file():
            raise InvalidRequestError(f"Image not found: {path}")
        return cls(data=path.read_bytes(), mime_type=mime_type)


class ImagePart(BaseModel):
    """Inline image content part of an analysis request."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class TextPart(BaseModel):
    """Text content part of an analysis request."""

    model_config = ConfigDict(frozen=True)

    text: str


ContentPart = Union[ImagePart, TextPart]


class AnalysisRequest(BaseModel):
    """One fully assembled submission. Immutable once built.

    Attributes:
        description: The technician's own description of the fault.
        images: Attachments in upload order.
        knowledge_base_context: Formatted case archive, if one was imported.
        prompt_text: Final text part (description, archive, instructions).
    """

    model_config = ConfigDict(frozen=True)

    description: str
    images: Tuple[ImageAttachment, ...] = ()
    knowledge_base_context: Optional[str] = None
    prompt_text: str

    def parts(self) -> List[ContentPart]:
        """Ordered content parts: every image first, then the single text part."""
        parts: List[ContentPart] = [
            ImagePart(data=image.data, mime_type=image.mime_type)
            for image in self.images
        ]
        parts.append(TextPart(text=self.prompt_text))
        return parts


class Citation(BaseModel):
    """Web source the model consulted through search grounding."""

    uri: str
    title: str


class AnalysisResult(BaseModel):
    """Outcome of a successful analysis.

    Attributes:
        summary_text: Markdown-subset report text.
        citations: Grounding sources in the order the service returned them.
        from_archive: True when the text came from the case archive instead
            of the model.
    """

    summary_text: str
    citations: List[Citation] = []
    from_archive: bool = False


class ViewState(Enum):
    """Where the current session is in the submit/answer cycle."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    ERROR = "error"


class SessionState(BaseModel):
    """Mutable state of one technician session, owned by ``RepairAssistant``.

    Attributes:
        records: Current case library. Replaced wholesale on each import.
        view: Current view state.
        latest_result: Result of the most recent accepted submission.
        error_message: Message of the most recent accepted failure.
        submission_token: Token of the most recent submission.
    """

    records: List[CaseRecord] = []
    view: ViewState = ViewState.IDLE
    latest_result: Optional[AnalysisResult] = None
    error_message: Optional[str] = None
    submission_token: int = 0
