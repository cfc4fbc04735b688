"""
Avatar Upload Handler - orchestrates avatar upload, validation and generation.

    upload -> file check -> face classifier (remote or heuristic)
           -> avatar request -> download -> data URI

The handler owns the avatar state of one form. Only an ACCEPTED avatar
lets the form submit.
"""

import enum
from typing import Optional

import httpx

from registration.client.avatar_generator import AvatarGenerator, AvatarAsset
from registration.client.face_detection import FaceDetection, FacialCharacteristics
from registration.client.images import UploadedImage, open_image
from registration.validators import is_valid_image_file
from registration.logging_config import get_logger, log_with_context

logger = get_logger("avatar")

AVATAR_GENERATION_FAILED = "Failed to generate avatar. Please try again."


class AvatarState(enum.Enum):
    EMPTY = "empty"
    LOADING = "loading"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AvatarUploadHandler:
    def __init__(self, face_detection: FaceDetection, generator: AvatarGenerator,
                 client: httpx.AsyncClient):
        self.face_detection = face_detection
        self.generator = generator
        self.client = client
        self.reset()

    @property
    def is_valid(self) -> bool:
        return self.state is AvatarState.ACCEPTED

    def _reject(self, error: str):
        self.state = AvatarState.REJECTED
        self.error = error
        self.avatar = None

    async def handle_upload(self, upload: Optional[UploadedImage]):
        if upload is None:
            return

        self.reset()
        self.file_name = upload.filename

        file_check = is_valid_image_file(upload)
        if not file_check.valid:
            log_with_context(logger, "INFO", "Rejected avatar file",
                             context={"file_name": upload.filename},
                             extra_data={"reason": file_check.error, "bytes": upload.size})
            self._reject(file_check.error)
            return

        self.state = AvatarState.LOADING
        await self.detect_and_validate_face(upload)

    async def detect_and_validate_face(self, upload: UploadedImage):
        try:
            image = open_image(upload)
        except ValueError as e:
            log_with_context(logger, "WARNING", "Could not decode uploaded image",
                             context={"file_name": upload.filename}, extra_data={"error": str(e)})
            image = None

        validation = await self.face_detection.assess(upload, image)
        if not validation.valid:
            self._reject(validation.error)
            return

        if validation.warning:
            log_with_context(logger, "WARNING", "Face detection warning: {}".format(validation.message))
            self.warning = validation.message

        await self.generate_avatar(validation.characteristics)

    async def generate_avatar(self, characteristics: Optional[FacialCharacteristics]):
        request = self.generator.request_for(characteristics)
        try:
            self.avatar = await self.generator.fetch_embedded(request, self.client)
        except httpx.HTTPError as e:
            log_with_context(logger, "ERROR", "Avatar generation error",
                             extra_data={"error": str(e), "url": request.url})
            self._reject(AVATAR_GENERATION_FAILED)
            return

        self.state = AvatarState.ACCEPTED
        self.error = None
        log_with_context(logger, "INFO", "Avatar ready",
                         extra_data={"style": request.style, "fallback": characteristics is None})

    def reset(self):
        self.state = AvatarState.EMPTY
        self.avatar: Optional[AvatarAsset] = None
        self.error: Optional[str] = None
        self.warning: Optional[str] = None
        self.file_name: Optional[str] = None

    def validation_state(self):
        """(is_valid, avatar data URI or None)"""
        return self.is_valid, self.avatar.data_uri if self.avatar else None
