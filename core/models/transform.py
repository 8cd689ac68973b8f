# =============================================================================
# core/models/transform.py - Transformation Request/Response Schemas
# =============================================================================
# These models define the API contract for job submission and status:
# - TransformationInput: Provider input built from the multipart form
# - SubmissionResponse: Body of POST /api/transform-realtime
# - StatusResponse: Body of GET /api/status/{operationId} (polling fallback)
#
# Out-of-range options are coerced to defaults rather than rejected, so a
# stale client never blocks a submission on a cosmetic option.
# =============================================================================

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .operation import Operation

OutputFormat = Literal["png", "jpg"]

ASPECT_RATIOS = (
    "match_input_image", "1:1", "16:9", "9:16", "4:3", "3:4",
    "3:2", "2:3", "4:5", "5:4", "21:9", "9:21", "2:1", "1:2",
)

MIN_IMAGES = 1
MAX_IMAGES = 10


class TransformationInput(BaseModel):
    """
    Input sent to the image model when creating a prediction.

    Built by the submission endpoint from the uploaded image (as a data URL)
    and the optional form fields.

    Example:
        {
            "input_image": "data:image/png;base64,...",
            "style": "Anime",
            "persona": "None",
            "num_images": 2,
            "aspect_ratio": "match_input_image",
            "output_format": "png"
        }
    """

    # data:image/...;base64,... or https://...
    input_image: str = Field(
        ...,
        min_length=1,
        description="Source image as data URL or http(s) URL"
    )

    style: str = Field(default="Random")
    persona: str = Field(default="None")

    num_images: int = Field(
        default=1,
        ge=MIN_IMAGES,
        le=MAX_IMAGES,
        description="Number of variations to generate (1-10)"
    )

    aspect_ratio: str = Field(default="match_input_image")
    output_format: OutputFormat = Field(default="png")
    preserve_outfit: bool = Field(default=False)
    preserve_background: bool = Field(default=False)

    safety_tolerance: Literal[0, 1, 2] = Field(
        default=2,
        description="Provider safety filter level"
    )

    seed: int | None = Field(default=None)

    @field_validator("num_images", mode="before")
    @classmethod
    def clamp_num_images(cls, value: Any) -> int:
        """Clamp to 1..10; anything unparsable becomes 1."""
        try:
            number = int(float(value))
        except (TypeError, ValueError):
            return MIN_IMAGES
        return max(MIN_IMAGES, min(MAX_IMAGES, number))

    @field_validator("aspect_ratio", mode="before")
    @classmethod
    def default_aspect_ratio(cls, value: Any) -> str:
        return value if value in ASPECT_RATIOS else "match_input_image"

    @field_validator("output_format", mode="before")
    @classmethod
    def default_output_format(cls, value: Any) -> str:
        return value if value in ("png", "jpg") else "png"

    @field_validator("safety_tolerance", mode="before")
    @classmethod
    def default_safety_tolerance(cls, value: Any) -> int:
        try:
            level = int(value)
        except (TypeError, ValueError):
            return 2
        return level if level in (0, 1, 2) else 2

    @field_validator("style", "persona", mode="before")
    @classmethod
    def default_blank_choice(cls, value: Any, info) -> str:
        if value in (None, ""):
            return "Random" if info.field_name == "style" else "None"
        return value

    @property
    def file_extension(self) -> str:
        return "jpg" if self.output_format == "jpg" else "png"

    @property
    def content_type(self) -> str:
        return "image/jpeg" if self.output_format == "jpg" else "image/png"

    def summary(self) -> dict[str, Any]:
        """Short description sent with the initial 'starting' status."""
        return {
            "style": self.style,
            "persona": self.persona,
            "num_images": self.num_images,
        }

    def to_provider_input(self) -> dict[str, Any]:
        """Provider payload; an unset seed is omitted entirely."""
        return self.model_dump(exclude_none=True)


class SubmissionResponse(BaseModel):
    """
    Response of the job submission endpoint.

    Example:
        {
            "success": true,
            "operationId": "abc123",
            "message": "Transformation started. Connect to WebSocket for real-time updates."
        }
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    operation_id: str | None = Field(default=None, alias="operationId")
    message: str | None = None
    error: str | None = None


class StatusResponse(BaseModel):
    """Response of the status endpoint used by the polling fallback."""

    success: bool
    operation: Operation | None = None
    error: str | None = None
