"""Code validation tool — the model's only way to check its own output."""

from __future__ import annotations

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from studio.tools import register
from studio.validator import format_validation_result, validate_strudel_code


class ValidateCodeInput(BaseModel):
    code: str = Field(
        default="",
        description="Complete Strudel JavaScript code to validate (required)",
    )


@register
@tool("validate_code", args_schema=ValidateCodeInput)
def validate_code(code: str = "") -> str:
    """Validate Strudel code. MUST call before returning code to user."""
    if not code or not code.strip():
        return "Error: No code provided to validate"
    return format_validation_result(validate_strudel_code(code))
