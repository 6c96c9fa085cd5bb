"""
Pydantic models for palm-photo validation.

Request body carries the photo as a data URL ("data:image/<type>;base64,...").
The model's verdict is returned in the same snake_case shape as the rest of
the API.
"""
from typing import List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from astroline.agents.report_agent.schemas import Language

# ~7.5 MB of image data once base64-decoded
MAX_IMAGE_DATA_URL_LENGTH = 10_000_000


class PalmValidationRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    image: str = Field(..., min_length=1, max_length=MAX_IMAGE_DATA_URL_LENGTH)
    language: Language = Language.en

    @field_validator("image")
    @classmethod
    def must_be_image_data_url(cls, value: str) -> str:
        if not value.startswith("data:image/"):
            raise ValueError("image must be a data:image/... URL")
        return value


class PalmCheckDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_open_palm: bool = Field(default=False, validation_alias=AliasChoices("is_open_palm", "isOpenPalm"))
    is_palm_visible: bool = Field(default=False, validation_alias=AliasChoices("is_palm_visible", "isPalmVisible"))
    are_lines_visible: bool = Field(
        default=False, validation_alias=AliasChoices("are_lines_visible", "areLinesVisible")
    )
    is_good_lighting: bool = Field(
        default=False, validation_alias=AliasChoices("is_good_lighting", "isGoodLighting")
    )
    is_palm_large_enough: bool = Field(
        default=False, validation_alias=AliasChoices("is_palm_large_enough", "isPalmLargeEnough")
    )

    @property
    def critical_checks_pass(self) -> bool:
        """Open palm, visible, lines readable. Lighting and size are advisory."""
        return self.is_open_palm and self.is_palm_visible and self.are_lines_visible


class PalmValidationResult(BaseModel):
    is_valid: bool
    confidence: int = Field(..., ge=0, le=100)
    feedback: str
    details: PalmCheckDetails = Field(default_factory=PalmCheckDetails)
    suggestions: List[str] = []
    # True when the verdict is a fallback because the vision model was unreachable
    service_unavailable: bool = False
