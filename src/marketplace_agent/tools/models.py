"""Tool input and output models."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# SHARED
# =============================================================================


class ProductImage(BaseModel):
    """Raw product photo supplied by the seller."""

    data: bytes = Field(..., repr=False)
    content_type: str = "image/png"
    filename: str | None = None

    @field_validator("data")
    @classmethod
    def _not_empty(cls, value: bytes) -> bytes:
        if not value:
            raise ValueError("image data must not be empty")
        return value


class ImageReference(BaseModel):
    """Corrected image stored in object storage."""

    key: str
    url: str
    content_type: str = "image/png"


class ImageMatch(BaseModel):
    """Page showing the same product, from reverse image search."""

    url: str
    title: str = ""
    price: float | None = None
    currency: str | None = None
    similarity: float | None = None


class CompetitorOffer(BaseModel):
    """Scraped offer for a comparable product."""

    title: str
    price: float
    currency: str
    url: str


# =============================================================================
# PHOTO CORRECTION
# =============================================================================


class CorrectionOptions(BaseModel):
    remove_background: bool = True
    width: int = 1280
    height: int = 960
    watermark: str | None = None


class PhotoCorrectionInput(BaseModel):
    run_id: str
    images: list[ProductImage] = Field(..., min_length=1)
    options: CorrectionOptions = Field(default_factory=CorrectionOptions)


class PhotoCorrectionResult(BaseModel):
    images: list[ImageReference]
    raw_keys: list[str] = Field(default_factory=list)

    @property
    def urls(self) -> list[str]:
        return [image.url for image in self.images]


# =============================================================================
# VISION
# =============================================================================


class VisionInput(BaseModel):
    image_urls: list[str] = Field(..., min_length=1)
    language: str = "ukr"
    hints: str | None = None


class VisionResult(BaseModel):
    product_name: str
    description: str
    key_features: list[str] = Field(default_factory=list)
    category: str | None = None


# =============================================================================
# RESEARCH
# =============================================================================


class ReverseImageSearchInput(BaseModel):
    image_url: str


class ReverseImageSearchResult(BaseModel):
    matches: list[ImageMatch] = Field(default_factory=list)


class WebScraperInput(BaseModel):
    query: str = Field(..., min_length=1)
    max_results: int = 5


class WebScraperResult(BaseModel):
    offers: list[CompetitorOffer] = Field(default_factory=list)


class MarketAnalysisInput(BaseModel):
    """
    Inputs of the price recommendation.

    Either research result may be None when its stage failed.
    """

    vision: VisionResult
    reverse_image_search: ReverseImageSearchResult | None = None
    web_scraper: WebScraperResult | None = None
    currency: str = "UAH"
    hints: str | None = None


class PriceRange(BaseModel):
    min: float
    max: float


class MarketAnalysisResult(BaseModel):
    recommended_price: float
    price_range: PriceRange | None = None
    rationale: str = ""
    sources: list[str] = Field(default_factory=list)
    currency: str = "UAH"


# =============================================================================
# CONTENT
# =============================================================================


class RefineContentInput(BaseModel):
    vision: VisionResult
    market: MarketAnalysisResult
    language: str = "ukr"


class RefineContentResult(BaseModel):
    title: str
    description: str
    keywords: list[str] = Field(default_factory=list)


class AudienceInput(BaseModel):
    content: RefineContentResult
    price: float
    currency: str = "UAH"


class AudienceResult(BaseModel):
    segment: str
    demographics: str = ""
    interests: list[str] = Field(default_factory=list)


class CaptionInput(BaseModel):
    content: RefineContentResult
    audience: AudienceResult
    language: str = "ukr"


class CaptionResult(BaseModel):
    caption: str

    @property
    def hashtags(self) -> list[str]:
        return [word for word in self.caption.split() if word.startswith("#")]


# =============================================================================
# VALIDATION AND PUBLISHING
# =============================================================================


class ListingDraft(BaseModel):
    """Everything needed to publish one listing."""

    sku: str | None = None
    title: str = ""
    description: str = ""
    price: float = 0.0
    currency: str = "UAH"
    keywords: list[str] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)
    audience: str | None = None
    caption: str | None = None
    category: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Marketplace API payload."""
        payload: dict[str, Any] = {
            "name": self.title,
            "description": self.description,
            "price": self.price,
            "currency": self.currency,
            "keywords": ", ".join(self.keywords),
            "images": [{"url": url} for url in self.image_urls],
        }
        if self.sku:
            payload["sku"] = self.sku
        if self.category:
            payload["category"] = self.category
        return payload


class ValidationReport(BaseModel):
    valid: bool
    problems: list[str] = Field(default_factory=list)
    draft: ListingDraft


class PublishInput(BaseModel):
    draft: ListingDraft


class PublishResult(BaseModel):
    listing_id: str
    response: dict[str, Any] = Field(default_factory=dict)
