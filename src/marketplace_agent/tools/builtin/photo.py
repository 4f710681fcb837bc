"""Photo correction tool."""

import asyncio
import mimetypes

from marketplace_agent.clients.imaging import ImageCorrectionBackend
from marketplace_agent.clients.storage import ObjectStorage
from marketplace_agent.core.cancellation import CancellationToken
from marketplace_agent.core.exceptions import ToolError
from marketplace_agent.tools.base import Tool
from marketplace_agent.tools.models import (
    ImageReference,
    PhotoCorrectionInput,
    PhotoCorrectionResult,
    ProductImage,
    CorrectionOptions,
)
from marketplace_agent.tools.registry import ToolRegistry
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


@ToolRegistry.register("photo_correction")
class PhotoCorrectionTool(Tool[PhotoCorrectionInput, PhotoCorrectionResult]):
    """
    Upload raw photos, correct them and store the results.

    Key layout: ``raw/{run_id}/image-{n}.{ext}`` for originals and
    ``processed/{run_id}/image-{n}.png`` for corrected images. Returns
    presigned references to the corrected images in input order.
    """

    name = "photo_correction"
    description = "Removes backgrounds, resizes and watermarks product photos."
    input_model = PhotoCorrectionInput

    def __init__(
        self,
        storage: ObjectStorage,
        corrector: ImageCorrectionBackend,
        bucket: str,
        presign_ttl: int = 3600,
    ):
        self.storage = storage
        self.corrector = corrector
        self.bucket = bucket
        self.presign_ttl = presign_ttl

    async def invoke(
        self,
        input: PhotoCorrectionInput,
        cancellation: CancellationToken,
    ) -> PhotoCorrectionResult:
        # First failure cancels the remaining images
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(
                        self._process(input.run_id, n, image, input.options, cancellation)
                    )
                    for n, image in enumerate(input.images, start=1)
                ]
        except ExceptionGroup as e:
            raise e.exceptions[0]
        processed = [task.result() for task in tasks]
        logger.info("Photos corrected", count=len(processed), run_id=input.run_id)
        return PhotoCorrectionResult(
            images=[reference for _, reference in processed],
            raw_keys=[raw_key for raw_key, _ in processed],
        )

    async def _process(
        self,
        run_id: str,
        n: int,
        image: ProductImage,
        options: CorrectionOptions,
        cancellation: CancellationToken,
    ) -> tuple[str, ImageReference]:
        extension = mimetypes.guess_extension(image.content_type) or ".bin"
        raw_key = await self._upload(
            f"raw/{run_id}/image-{n}{extension}", image.data, image.content_type, cancellation
        )

        corrected = await cancellation.guard(self.corrector.correct(image, options))
        if not corrected:
            raise ToolError.rejected(f"Image correction returned no data for image {n}")

        processed_key = await self._upload(
            f"processed/{run_id}/image-{n}.png", corrected, "image/png", cancellation
        )
        url = await cancellation.guard(
            self.storage.presign(self.bucket, processed_key, self.presign_ttl)
        )
        return raw_key, ImageReference(key=processed_key, url=url)

    async def _upload(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cancellation: CancellationToken,
    ) -> str:
        stored = await cancellation.guard(self.storage.upload(self.bucket, key, data, content_type))
        if stored is None:
            raise ToolError.rejected(f"Object storage refused {key}", detail={"key": key})
        return stored
