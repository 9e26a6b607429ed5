"""Prompt assembly for repair analysis requests.

Builds the single ``AnalysisRequest`` sent to Gemini for a submission: photos
first in upload order, then one text part holding the technician's description,
the formatted case archive (when one is loaded) and a fixed closing
instruction. The system instruction lives here as well so that everything the
model is told is kept in one place.
"""

from typing import Iterable, Optional, Sequence

from .models import AnalysisRequest, CaseRecord, ImageAttachment

CASE_SEPARATOR = "\n---\n"
NO_SOLUTION = "none"

KNOWLEDGE_BASE_HEADER = (
    "*** Technician's private repair archive ***\n"
    "Check these historical cases first. If a similar case exists, cite it "
    "explicitly at the start of the report."
)
KNOWLEDGE_BASE_FOOTER = "*** End of repair archive ***"

INSTRUCTION_SUFFIX = (
    "Combine the photos (if any), the repair archive above (if any) and your "
    "own expertise into a complete analysis."
)

SYSTEM_INSTRUCTION_TEMPLATE = """You are an expert electronics repair technician and engineer.
Your goal is to help the user repair an electronic device.

You may be given a **User-Provided Knowledge Base** of past repair cases.
**CRITICAL PROCESS**:
1.  **Check the Knowledge Base FIRST**: look for devices or failure descriptions similar to the current issue.
    *   If a match is found, base your primary strategy on the archived solution and cite the matched case.
    *   Then validate whether that solution applies to the current description and photos, and expand on it with web search (datasheets, forums).
    *   If the archived solution is brief, flesh it out into full steps.
2.  **Analyze Visuals (if provided)**: look for physical defects.
3.  **Analyze Text**: identify likely failure modes.
4.  **Search**: use Google Search for specific manuals and datasheets.
5.  **Plan**: produce a structured repair plan.

Output structure (Markdown, use "## " and "### " headers, "- **Label**: text" bullets):
*   **Knowledge Base Match**: only if a relevant case is found.
*   **Safety Warning**
*   **Visual Analysis**: only if photos are provided.
*   **Diagnosis**: explain the theory.
*   **Tools Needed**
*   **Step-by-Step Plan**
*   **Pro Tips**

Tone: professional, technical, encouraging.
Language: {language}.
"""


def build_system_instruction(language: str) -> str:
    """System instruction with the report language filled in."""
    return SYSTEM_INSTRUCTION_TEMPLATE.format(language=language)


def format_case(index: int, record: CaseRecord) -> str:
    """Render one case as a fixed-format block with a 1-based index."""
    return (
        f"[Case {index}] Device: {record.device_name}\n"
        f"Symptom: {record.fault_description}\n"
        f"Solution: {record.solution_text or NO_SOLUTION}"
    )


class PromptAssembler:
    """Builds analysis requests from a submission and the case library.

    The text part is always laid out as: description, then the knowledge-base
    block (if any), then the closing instruction.
    """

    def build_knowledge_context(self, records: Iterable[CaseRecord]) -> Optional[str]:
        """Concatenate formatted cases, or return None for an empty library."""
        blocks = [
            format_case(index, record) for index, record in enumerate(records, 1)
        ]
        if not blocks:
            return None
        return CASE_SEPARATOR.join(blocks)

    def build_prompt_text(
        self, description: str, knowledge_base_context: Optional[str]
    ) -> str:
        text = f"Current device / fault description: {description}\n\n"
        if knowledge_base_context:
            text += (
                f"{KNOWLEDGE_BASE_HEADER}\n\n"
                f"{knowledge_base_context}\n\n"
                f"{KNOWLEDGE_BASE_FOOTER}\n\n"
            )
        return text + INSTRUCTION_SUFFIX

    def assemble(
        self,
        description: str,
        images: Sequence[ImageAttachment] = (),
        records: Sequence[CaseRecord] = (),
    ) -> AnalysisRequest:
        """Build the immutable request for one submission.

        Args:
            description: The technician's description, used verbatim.
            images: Attachments in upload order.
            records: Current case library; may be empty.

        Returns:
            AnalysisRequest: Request whose ``parts()`` puts images before text.
        """
        context = self.build_knowledge_context(records)
        return AnalysisRequest(
            description=description,
            images=tuple(images),
            knowledge_base_context=context,
            prompt_text=self.build_prompt_text(description, context),
        )
