"""
In-memory EvidenceStorage.
"""

from typing import Dict, Tuple

from storefront.domain import VideoAttachment
from storefront.exceptions import EvidenceUploadFailed
from storefront.repositories import EvidenceStorage
from storefront.validation import sanitize_filename


class MemoryEvidenceStorage(EvidenceStorage):
    def __init__(self) -> None:
        self.objects: Dict[str, Tuple[str, bytes]] = {}
        self.fail_uploads = False

    async def upload_video(
        self, request_id: str, attachment: VideoAttachment
    ) -> str:
        if self.fail_uploads:
            raise EvidenceUploadFailed("Evidence storage unreachable")
        key = f"{request_id}/{sanitize_filename(attachment.filename)}"
        self.objects[key] = (attachment.content_type, attachment.data)
        return f"memory://evidence/{key}"
