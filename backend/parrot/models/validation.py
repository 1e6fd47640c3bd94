from pydantic import BaseModel, Field


class ValidationResult(BaseModel):
    """Result of a form field check. Only the first failing rule is reported."""
    isValid: bool = Field(..., description="Whether the value passed every rule")
    message: str = Field("", description="Message of the first failing rule, empty when valid")
