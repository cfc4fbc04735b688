"""
Application context for the registration form.

Everything a form needs (settings, HTTP clients, repository, avatar
pipeline) is built once here and handed to RegistrationForm, instead of
living in module-level globals.
"""

import os
from dataclasses import dataclass
from typing import Optional

import httpx

from registration.client.avatar_generator import AvatarGenerator, DEFAULT_AVATAR_API_URL
from registration.client.avatar_upload import AvatarUploadHandler
from registration.client.face_detection import FaceDetection, RemoteFaceClassifier
from registration.client.repository import StudentRepository


@dataclass
class ClientSettings:
    api_url: str = "http://localhost:8000"
    face_api_url: Optional[str] = None
    avatar_api_url: str = DEFAULT_AVATAR_API_URL
    model_load_polls: int = 100
    model_load_interval: float = 0.1
    success_display_seconds: float = 3.0

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(
            api_url=os.getenv("API_URL", "http://localhost:8000"),
            face_api_url=os.getenv("FACE_API_URL") or None,
            avatar_api_url=os.getenv("AVATAR_API_URL", DEFAULT_AVATAR_API_URL),
            model_load_polls=int(os.getenv("MODEL_LOAD_POLLS", "100")),
            model_load_interval=float(os.getenv("MODEL_LOAD_INTERVAL", "0.1")),
            success_display_seconds=float(os.getenv("SUCCESS_DISPLAY_SECONDS", "3")),
        )


@dataclass
class AppContext:
    settings: ClientSettings
    http_client: httpx.AsyncClient
    repository: StudentRepository
    face_detection: FaceDetection
    avatar_handler: AvatarUploadHandler
    owns_clients: bool = False

    @classmethod
    def build(cls, settings: ClientSettings,
              http_client: Optional[httpx.AsyncClient] = None,
              api_client: Optional[httpx.AsyncClient] = None,
              generator: Optional[AvatarGenerator] = None) -> "AppContext":
        """
        Wire the form's collaborators.

        ``http_client`` talks to the face-analysis and avatar services,
        ``api_client`` to the students API (defaults to ``http_client``).
        Clients created here have no timeout and are closed by aclose().
        """
        owns_clients = http_client is None
        http_client = http_client or httpx.AsyncClient(timeout=None)
        api_client = api_client or http_client

        remote = RemoteFaceClassifier(settings.face_api_url, http_client) if settings.face_api_url else None
        face_detection = FaceDetection(remote,
                                       max_polls=settings.model_load_polls,
                                       poll_interval=settings.model_load_interval)
        generator = generator or AvatarGenerator(settings.avatar_api_url)

        return cls(
            settings=settings,
            http_client=http_client,
            repository=StudentRepository(api_client, settings.api_url),
            face_detection=face_detection,
            avatar_handler=AvatarUploadHandler(face_detection, generator, http_client),
            owns_clients=owns_clients,
        )

    async def aclose(self):
        await self.face_detection.close()
        if self.owns_clients:
            await self.http_client.aclose()
