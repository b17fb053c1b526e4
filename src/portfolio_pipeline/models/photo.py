"""Photo, import and analysis records."""

from datetime import date, datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(str, Enum):
    """The four gallery buckets."""
    BIRDS = "birds"
    WILDLIFE = "wildlife"
    LANDSCAPES = "landscapes"
    FLORA_MACRO = "flora-macro"


class LandscapeFilter(str, Enum):
    """Sub-tags that only apply to landscapes."""
    MOUNTAINS = "mountains"
    WATERFALLS = "waterfalls"
    CITYSCAPES = "cityscapes"


CATEGORY_ID_PREFIXES = {
    "birds": "bird",
    "wildlife": "wildlife",
    "landscapes": "landscape",
    "flora-macro": "flora",
}

VALID_CATEGORIES = tuple(c.value for c in Category)
VALID_FILTERS = tuple(f.value for f in LandscapeFilter)
FALLBACK_CATEGORY = Category.FLORA_MACRO.value


class PhotoRecord(BaseModel):
    """A published photo as stored in photos.yaml.

    Keys this model does not know about are kept so that hand edits to the
    store survive a rewrite.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    filename: str = ""
    slug: str
    category: str
    filters: List[str] = Field(default_factory=list)
    species: Optional[str] = None
    location: Optional[str] = None
    title: str = ""
    description: str = ""
    instagram_caption: Optional[str] = None
    date_taken: Optional[str] = None
    available_for_print: bool = True
    cloudinary_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @field_validator("date_taken", mode="before")
    @classmethod
    def _date_to_string(cls, value):
        # Unquoted dates in hand-edited YAML load as date objects
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return value

    @field_validator("filters", mode="before")
    @classmethod
    def _filters_list(cls, value):
        if value is None:
            return []
        return value

    def to_yaml_dict(self) -> dict:
        return self.model_dump(exclude_none=True)


class PendingImport(BaseModel):
    """A file copied into the pending area, awaiting classification."""

    filename: str
    path: str
    original_path: str
    instagram_caption: str = ""
    instagram_timestamp: Optional[int] = None
    instagram_date: str = ""
    instagram_location: str = ""
    processed_at: str


class Classification(BaseModel):
    category: str = FALLBACK_CATEGORY
    filter: Optional[str] = None
    species: Optional[str] = None
    location: Optional[str] = None


class Caption(BaseModel):
    title: str
    description: str = ""


class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(input=self.input + other.input, output=self.output + other.output)


class ClassificationOutcome(BaseModel):
    """Either a parsed classification or the flora-macro fallback."""

    status: Literal["parsed", "fallback"]
    classification: Classification
    reason: Optional[str] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @classmethod
    def parsed(cls, classification: Classification) -> "ClassificationOutcome":
        return cls(status="parsed", classification=classification)

    @classmethod
    def fallback(cls, reason: str) -> "ClassificationOutcome":
        return cls(
            status="fallback",
            classification=Classification(category=FALLBACK_CATEGORY),
            reason=reason,
        )

    @property
    def is_fallback(self) -> bool:
        return self.status == "fallback"


class CaptionOutcome(BaseModel):
    """Either a parsed caption or a locally built fallback caption."""

    status: Literal["parsed", "fallback"]
    caption: Caption
    reason: Optional[str] = None
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @classmethod
    def parsed(cls, caption: Caption) -> "CaptionOutcome":
        return cls(status="parsed", caption=caption)

    @classmethod
    def fallback(cls, caption: Caption, reason: str) -> "CaptionOutcome":
        return cls(status="fallback", caption=caption, reason=reason)

    @property
    def is_fallback(self) -> bool:
        return self.status == "fallback"


class ClassifiedPhoto(PendingImport):
    classification: Classification
    classification_error: Optional[str] = None


class CaptionedPhoto(ClassifiedPhoto):
    caption: Caption
    caption_error: Optional[str] = None
