"""Main Repair Assistant module that owns the session and runs analyses.

This module provides the ``RepairAssistant`` class, the single owner of a
technician's session state: the imported case library, the current view state
and the latest result. It ties the pieces together - importing archives through
the record normalizer, assembling requests, and running them through the
resilient invoker against Gemini.

Submissions are tagged with a monotonically increasing token. A response that
arrives after a newer submission was started is discarded, so an abandoned
request can never overwrite the answer to a newer one.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import AssistantConfig
from .credentials import CredentialProvider, EnvironmentCredentials
from .errors import AuthorizationError, InvalidRequestError, ServiceError
from .gemini_client import GeminiClient
from .invoker import ResilientInvoker
from .models import (
    AnalysisRequest,
    AnalysisResult,
    CaseRecord,
    ImageAttachment,
    SessionState,
    ViewState,
)
from .normalizer import RecordNormalizer, import_case_file, import_cases
from .prompts import PromptAssembler

logger = logging.getLogger("repair-assistant")


def archived_case_report(record: CaseRecord) -> str:
    """Report text shown when a case is opened straight from the archive."""
    return (
        f"## {record.device_name} - archived solution\n"
        f"\n"
        f"**Symptom**: {record.fault_description}\n"
        f"\n"
        f"---\n"
        f"\n"
        f"### Archived solution\n"
        f"\n"
        f"{record.solution_text}"
    )


class RepairAssistant:
    """Repair assistant session: case library, submissions and results.

    Attributes:
        config: Assistant configuration (model, retry policy, credentials).
        state: Session state; replaced piecewise, never shared.
        credentials: Source of the Gemini API key.
        client: Outbound analysis collaborator.
        invoker: Retry wrapper around ``client``.
    """

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        credentials: Optional[CredentialProvider] = None,
        client: Optional[GeminiClient] = None,
        invoker: Optional[ResilientInvoker] = None,
        normalizer: Optional[RecordNormalizer] = None,
        assembler: Optional[PromptAssembler] = None,
    ):
        self.config = config or AssistantConfig()
        self.state = SessionState()
        self.credentials = credentials or EnvironmentCredentials()
        self.client = client or GeminiClient(
            self.config.llm, api_key_provider=self.credentials.api_key
        )
        self.invoker = invoker or ResilientInvoker(self.config.retry)
        self.normalizer = normalizer or RecordNormalizer()
        self.assembler = assembler or PromptAssembler()

    @property
    def records(self) -> List[CaseRecord]:
        return self.state.records

    def import_library(self, path: Union[str, Path]) -> List[CaseRecord]:
        """Replace the case library with the contents of an archive file.

        The previous library stays in place if the import fails.

        Raises:
            ImportFormatError: If the file cannot be parsed.
            NoValidRecordsError: If no row has a fault description.
        """
        records = import_case_file(path, self.normalizer)
        self.state.records = records
        logger.info(f"Imported {len(records)} cases from {Path(path).name}")
        return records

    def import_library_bytes(self, filename: str, content: bytes) -> List[CaseRecord]:
        """Same as ``import_library`` for uploaded content."""
        records = import_cases(filename, content, self.normalizer)
        self.state.records = records
        logger.info(f"Imported {len(records)} cases from {filename}")
        return records

    def clear_library(self) -> None:
        self.state.records = []

    def build_request(
        self, description: str, images: Sequence[ImageAttachment] = ()
    ) -> AnalysisRequest:
        """Assemble a request against the current library.

        Raises:
            InvalidRequestError: If there is neither a description nor a photo.
        """
        if not description.strip() and not images:
            raise InvalidRequestError("Describe the fault or attach a photo")
        return self.assembler.assemble(description, images, self.state.records)

    async def analyze(
        self, description: str, images: Sequence[ImageAttachment] = ()
    ) -> Optional[AnalysisResult]:
        """Submit a fault for analysis.

        Args:
            description: Technician's fault description.
            images: Photos of the fault, in upload order.

        Returns:
            Optional[AnalysisResult]: The result, or None if a newer submission
                was started while this one was in flight.

        Raises:
            InvalidRequestError: Nothing to analyze.
            AuthorizationError: No key selected, or the key was rejected.
            MaxRetriesExceededError: The service kept failing transiently.
            UnclassifiedServiceError: Any other service failure.
        """
        request = self.build_request(description, images)

        # Any accepted submission supersedes those still in flight.
        self.state.submission_token += 1
        token = self.state.submission_token

        if self.config.require_credentials and not self.credentials.has_selected_key():
            error = AuthorizationError("No Gemini API key selected", attempts=0)
            self._record_failure(error)
            raise error

        self.state.view = ViewState.ANALYZING
        self.state.error_message = None

        try:
            result = await self.invoker.invoke(lambda: self.client.generate(request))
        except ServiceError as e:
            if token != self.state.submission_token:
                logger.info(f"Discarding failure of superseded submission #{token}: {e}")
                return None
            self._record_failure(e)
            raise

        if token != self.state.submission_token:
            logger.info(f"Discarding response of superseded submission #{token}")
            return None

        self.state.latest_result = result
        self.state.view = ViewState.SUCCESS
        return result

    def open_archived_case(self, number: int) -> Optional[AnalysisResult]:
        """Show a library case's stored solution without calling the service.

        Args:
            number: 1-based position of the case in the library.

        Returns:
            Optional[AnalysisResult]: Archive report, or None when the case has
                no stored solution and its symptom should be analyzed instead.

        Raises:
            InvalidRequestError: If ``number`` is out of range.
        """
        if not 1 <= number <= len(self.state.records):
            raise InvalidRequestError(
                f"No case #{number} in the library ({len(self.state.records)} cases)"
            )
        record = self.state.records[number - 1]
        if not record.solution_text:
            return None

        result = AnalysisResult(
            summary_text=archived_case_report(record), from_archive=True
        )
        self.state.latest_result = result
        self.state.view = ViewState.SUCCESS
        self.state.error_message = None
        return result

    def reset(self) -> None:
        """Return to the idle view, keeping the case library."""
        self.state.view = ViewState.IDLE
        self.state.latest_result = None
        self.state.error_message = None

    def _record_failure(self, error: Exception) -> None:
        self.state.view = ViewState.ERROR
        self.state.error_message = str(error)
