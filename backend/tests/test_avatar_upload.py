from dataclasses import replace

import pytest

from registration.client.avatar_upload import AvatarState, AVATAR_GENERATION_FAILED
from registration.client.context import AppContext
from registration.client.face_detection import (
    HEURISTIC_ACCEPT_MESSAGE, LOW_CONFIDENCE_MESSAGE, MULTIPLE_FACES_MESSAGE,
    NO_FACE_MESSAGE, TOO_SMALL_MESSAGE, UNVERIFIED_MESSAGE
)
from registration.client.images import UploadedImage

from factories import face, make_photo


def avatar_paths(services):
    return [path for _, host, path, _ in services.calls if host == "avatars.test"]


@pytest.mark.asyncio
async def test_non_image_rejected_without_remote_calls(context, services):
    handler = context.avatar_handler
    await handler.handle_upload(UploadedImage("notes.txt", "text/plain", b"hello"))
    assert handler.state is AvatarState.REJECTED
    assert handler.error == "Please upload a valid image file (JPG, PNG, etc.)"
    assert services.calls == []


@pytest.mark.asyncio
async def test_oversized_image_rejected(context):
    handler = context.avatar_handler
    await handler.handle_upload(UploadedImage("big.png", "image/png", b"\0" * (5 * 1024 * 1024 + 1)))
    assert handler.state is AvatarState.REJECTED
    assert "smaller than 5MB" in handler.error


@pytest.mark.asyncio
async def test_accepted_with_remote_classifier(context, services):
    handler = context.avatar_handler
    await handler.handle_upload(make_photo())

    assert handler.state is AvatarState.ACCEPTED
    assert handler.is_valid
    assert handler.warning is None
    assert handler.file_name == "me.png"
    assert handler.avatar.data_uri.startswith("data:image/svg+xml;base64,")
    assert services.detector_calls() == ["tiny"]
    assert avatar_paths(services) == ["/7.x/lorelei/svg"]

    seed = [params["seed"] for _, host, _, params in services.calls if host == "avatars.test"][0]
    assert seed.startswith("female-24-medium-light-false-round-")


@pytest.mark.asyncio
async def test_zero_faces_rejected(context, services):
    services.detections = {"tiny": [], "ssd": []}
    handler = context.avatar_handler
    await handler.handle_upload(make_photo())
    assert handler.state is AvatarState.REJECTED
    assert handler.error == NO_FACE_MESSAGE
    assert handler.avatar is None
    assert services.detector_calls() == ["tiny", "ssd"]
    assert avatar_paths(services) == []


@pytest.mark.asyncio
async def test_multiple_faces_rejected(context, services):
    services.detections = {"tiny": [face(), face()], "ssd": []}
    await context.avatar_handler.handle_upload(make_photo())
    assert context.avatar_handler.error == MULTIPLE_FACES_MESSAGE


@pytest.mark.asyncio
async def test_low_confidence_accepted_with_warning(context, services):
    services.detections = {"tiny": [face(score=0.25)], "ssd": []}
    handler = context.avatar_handler
    await handler.handle_upload(make_photo())
    assert handler.is_valid
    assert handler.warning == LOW_CONFIDENCE_MESSAGE


@pytest.mark.asyncio
async def test_remote_down_uses_heuristic_and_fallback_avatar(context, services):
    services.detect_status = 500
    handler = context.avatar_handler
    await handler.handle_upload(make_photo())
    assert handler.is_valid
    assert handler.warning == HEURISTIC_ACCEPT_MESSAGE

    seed = [params["seed"] for _, host, _, params in services.calls if host == "avatars.test"][0]
    assert seed.startswith("fallback-")


@pytest.mark.asyncio
async def test_remote_down_small_image_rejected(context, services):
    services.detect_status = 500
    handler = context.avatar_handler
    await handler.handle_upload(make_photo(width=80, height=80))
    assert handler.state is AvatarState.REJECTED
    assert handler.error == TOO_SMALL_MESSAGE


@pytest.mark.asyncio
async def test_undecodable_image_proceeds_with_warning(context, services):
    services.load_status = 500
    handler = context.avatar_handler
    await handler.handle_upload(UploadedImage("broken.png", "image/png", b"not really a png"))
    assert handler.is_valid
    assert handler.warning == UNVERIFIED_MESSAGE


@pytest.mark.asyncio
async def test_avatar_service_failure(context, services):
    services.avatar_status = 503
    handler = context.avatar_handler
    await handler.handle_upload(make_photo())
    assert handler.state is AvatarState.REJECTED
    assert handler.error == AVATAR_GENERATION_FAILED
    assert handler.validation_state() == (False, None)


@pytest.mark.asyncio
async def test_without_face_service(settings, service_client, client, services):
    context = AppContext.build(replace(settings, face_api_url=None),
                               http_client=service_client, api_client=client)
    try:
        await context.avatar_handler.handle_upload(make_photo())
        assert context.avatar_handler.warning == HEURISTIC_ACCEPT_MESSAGE
        assert services.detector_calls() == []
    finally:
        await context.aclose()


@pytest.mark.asyncio
async def test_reset(context):
    handler = context.avatar_handler
    await handler.handle_upload(make_photo())
    assert handler.validation_state()[0]

    handler.reset()
    assert handler.state is AvatarState.EMPTY
    assert handler.validation_state() == (False, None)
    assert handler.file_name is None
    assert handler.warning is None


@pytest.mark.asyncio
async def test_new_upload_replaces_previous_result(context, services):
    handler = context.avatar_handler
    services.detections = {"tiny": [], "ssd": []}
    await handler.handle_upload(make_photo())
    assert handler.state is AvatarState.REJECTED

    services.detections = {"tiny": [face()], "ssd": []}
    await handler.handle_upload(make_photo(filename="second.png"))
    assert handler.is_valid
    assert handler.error is None
    assert handler.file_name == "second.png"
