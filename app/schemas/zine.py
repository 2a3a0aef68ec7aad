"""Pydantic schemas for zine generation."""

from pydantic import BaseModel, ConfigDict, Field


class GenerateZineRequest(BaseModel):
    subject: str = Field(
        ...,
        description="Topic to write the zine about (2-200 characters).",
        examples=["Urban beekeeping"],
    )


class ZineResponse(BaseModel):
    """A generated zine, one field per section in reading order."""

    model_config = ConfigDict(populate_by_name=True)

    subject: str = Field(..., description="Sanitized subject the zine was written about.")
    banner: str = Field(..., description="Bold, uppercase headline.")
    subheading: str = Field(..., description="Single-sentence tagline.")
    intro: str = Field(..., description="One introductory paragraph.")
    main_article: str = Field(
        ...,
        alias="mainArticle",
        description="Three to five paragraphs exploring the subject.",
    )
    opinion: str = Field(..., description="Two or three opinionated paragraphs.")
    fun_facts: list[str] = Field(
        default_factory=list,
        alias="funFacts",
        description="Three to five short facts.",
    )
    conclusion: str = Field(..., description="Closing paragraph(s).")
    cached: bool = Field(
        default=False,
        description="True if served from cache for a recently generated subject.",
    )
