"""Code-generation and summarization capabilities."""

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from autopilot.core.errors import ValidationError
from autopilot.services.llm import LLMService

logger = logging.getLogger(__name__)

PLAN_SYSTEM_PROMPT = """You are a senior software engineer preparing a change plan for review.
You never apply changes yourself. Respond with a JSON object in exactly this shape:
{"summary": "...",
 "changes": [{"path": "relative/file.py", "action": "create|modify|delete",
              "description": "...", "risk": "low|medium|high"}],
 "testing_notes": "..."}
Keep the plan small and prefer low-risk changes."""


class FileChange(BaseModel):
    """One proposed file change."""

    path: str = Field(min_length=1)
    action: Literal["create", "modify", "delete"]
    description: str
    risk: Literal["low", "medium", "high"]


class CodeChangePlan(BaseModel):
    """Reviewable implementation plan produced by the code-generation capability."""

    summary: str = ""
    changes: list[FileChange] = Field(default_factory=list)
    testing_notes: str = ""

    @property
    def highest_risk(self) -> str | None:
        order = {"low": 0, "medium": 1, "high": 2}
        if not self.changes:
            return None
        return max((change.risk for change in self.changes), key=order.__getitem__)


class CodeGenerationService:
    """Produces change plans and summaries; never touches the filesystem."""

    @staticmethod
    def propose(context: dict[str, Any]) -> CodeChangePlan:
        """Ask the model for a structured change plan.

        Args:
            context: Task title, description, focus and finding evidence

        Returns:
            Validated CodeChangePlan

        Raises:
            CapabilityUnavailableError: If the model is not configured
            ValidationError: If the model response does not match the plan shape
        """
        user_prompt = "Prepare a change plan for this task:\n\n" + json.dumps(
            context, indent=2, default=str
        )
        data = LLMService.chat_json(PLAN_SYSTEM_PROMPT, user_prompt)

        try:
            plan = CodeChangePlan.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"Code generation returned an invalid plan: {e}")
            raise ValidationError(f"Invalid change plan: {e}") from e

        logger.info(
            f"Received plan with {len(plan.changes)} changes "
            f"(highest risk: {plan.highest_risk})"
        )
        return plan

    @staticmethod
    def summarize(system: str, text: str, max_tokens: int = 600) -> str:
        """Produce free text from a system brief and input text."""
        return LLMService.chat(system, text, max_tokens=max_tokens).strip()
