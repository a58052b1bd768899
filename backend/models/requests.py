from pydantic import BaseModel, Field


class SectionContentRequest(BaseModel):
    content: str = Field(..., max_length=20000, description="New section content")


class RenameSectionsRequest(BaseModel):
    renames: dict[str, str] = Field(..., description="Current section name -> new name")


class SectionEditRequest(BaseModel):
    additional_context: str | None = Field(None, max_length=5000)


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)


class QuickAnalyzeRequest(BaseModel):
    cv_text: str = Field(..., max_length=50000, description="Plain text CV content")
