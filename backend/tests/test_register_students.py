import pytest
from PIL import Image

from register_students import register_entry


@pytest.fixture
def photo_path(tmp_path):
    path = tmp_path / "jane.png"
    Image.new("RGB", (200, 200), (200, 160, 130)).save(path)
    return str(path)


@pytest.mark.asyncio
async def test_registers_entry(context, photo_path):
    result = await register_entry(context, {
        "variant": "contact",
        "photo": photo_path,
        "fields": {
            "full_name": "Aron Smith",
            "company": "Acme",
            "phone_number": 4102012011,
            "email": "aron.smith@gmail.com",
        },
    })
    assert result["status"] == "REGISTERED"
    assert result["id"]
    assert await context.repository.count() == 1


@pytest.mark.asyncio
async def test_rejects_invalid_fields(context, photo_path):
    result = await register_entry(context, {
        "photo": photo_path,
        "fields": {"first_name": "jane", "phone_number": "1234567890"},
    })
    assert result["status"] == "REJECTED"
    assert "phone_number" in result["errors"]
    assert "last_name" in result["errors"]
    assert not context.avatar_handler.is_valid


@pytest.mark.asyncio
async def test_missing_photo(context, tmp_path):
    result = await register_entry(context, {"photo": str(tmp_path / "nope.png"), "fields": {}})
    assert result["status"] == "REJECTED"
    assert result["errors"]["avatar"].startswith("Photo not found")


@pytest.mark.asyncio
async def test_unknown_variant(context):
    result = await register_entry(context, {"variant": "alumni", "fields": {}})
    assert result == {"status": "REJECTED", "errors": {"variant": "Unknown variant"}}
