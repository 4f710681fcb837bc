"""Image correction service client.

The service removes the background, resizes to the listing format and
stamps the watermark. This package never touches pixels itself.
"""

from abc import ABC, abstractmethod

import httpx

from marketplace_agent.core.resilience import (
    guard_breaker,
    imaging_circuit_breaker,
    wrap_httpx_errors,
)
from marketplace_agent.tools.models import CorrectionOptions, ProductImage
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


class ImageCorrectionBackend(ABC):
    @abstractmethod
    async def correct(self, image: ProductImage, options: CorrectionOptions) -> bytes:
        """Return corrected image bytes (PNG)."""
        ...


class HttpImageCorrectionClient(ImageCorrectionBackend):
    """Posts the image as multipart form data and reads PNG bytes back."""

    def __init__(self, client: httpx.AsyncClient, url: str):
        self._client = client
        self._url = url

    @guard_breaker("image-correction")
    @imaging_circuit_breaker
    @wrap_httpx_errors
    async def correct(self, image: ProductImage, options: CorrectionOptions) -> bytes:
        data = {
            "remove_background": str(options.remove_background).lower(),
            "width": str(options.width),
            "height": str(options.height),
        }
        if options.watermark:
            data["watermark"] = options.watermark

        response = await self._client.post(
            self._url,
            files={"image": (image.filename or "image.png", image.data, image.content_type)},
            data=data,
        )
        response.raise_for_status()

        logger.debug("Image corrected", size_in=len(image.data), size_out=len(response.content))
        return response.content
