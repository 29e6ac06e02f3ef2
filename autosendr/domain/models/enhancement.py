"""Request and result models for AI email enhancement."""

from pydantic import BaseModel, ConfigDict, Field


class EnhancementRequest(BaseModel):
    """Email text to enhance, plus the context used in the prompt."""

    subject: str = Field(..., description="Email subject line")
    body: str = Field(..., description="Email body")
    company_name: str = Field(..., alias="companyName", description="Target company")
    position: str | None = Field(default=None, description="Position applied for")
    recruiter_name: str | None = Field(
        default=None, alias="recruiterName", description="Recruiter to greet"
    )
    use_ai: bool = Field(default=False, alias="useAi", description="Whether to call the AI provider")

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class EnhancementResult(BaseModel):
    """Outcome of an enhancement attempt.

    On any failure the original subject and body are returned with
    ai_enhanced set to False, so the caller can always send something.
    """

    subject: str
    body: str
    ai_enhanced: bool = Field(default=False, serialization_alias="aiEnhanced")
    message: str | None = None
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)
