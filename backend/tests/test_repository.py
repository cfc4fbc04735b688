import httpx
import pytest

from registration.client.repository import StudentRepository, create_student_data
from registration.errors import ConflictError, NetworkError, NotFoundError, ServerError
from registration.services.students import DUPLICATE_PHONE_MESSAGE


def student_data(phone="4302032033", **fields):
    form_data = {
        "firstName": "Jane",
        "lastName": "Doe",
        "dateOfBirth": "2000-01-15",
        "desiredCourse": "Biology",
        "phoneNumber": phone,
    }
    form_data.update(fields)
    return create_student_data("course", form_data, None)


@pytest.fixture
def repository(client):
    return StudentRepository(client, "http://test")


@pytest.fixture
async def offline_client():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as ac:
        yield ac


def test_create_student_data():
    data = create_student_data("contact", {"fullName": "Aron"}, "data:image/svg+xml;base64,AA==")
    assert data["variant"] == "contact"
    assert data["fullName"] == "Aron"
    assert data["avatarData"] == "data:image/svg+xml;base64,AA=="
    assert data["registrationDate"]
    assert "id" not in data


@pytest.mark.asyncio
async def test_create_and_list(repository):
    record = await repository.create(student_data())
    assert record["first_name"] == "Jane"
    assert repository.students == [record]

    first = await repository.list_all()
    second = await repository.list_all()
    assert first == second == [record]


@pytest.mark.asyncio
async def test_create_conflict_carries_server_message(repository):
    await repository.create(student_data())
    with pytest.raises(ConflictError) as exc_info:
        await repository.create(student_data(firstName="John"))
    assert exc_info.value.message == DUPLICATE_PHONE_MESSAGE
    assert len(repository.students) == 1


@pytest.mark.asyncio
async def test_count_and_search(repository):
    await repository.create(student_data())
    await repository.create(student_data(phone="4102012011", firstName="Mary", lastName="Major"))

    assert await repository.count() == 2
    matches = await repository.search_by_text("major")
    assert [m["first_name"] for m in matches] == ["Mary"]


@pytest.mark.asyncio
async def test_get_and_delete(repository):
    record = await repository.create(student_data())
    assert (await repository.get(record["id"]))["phone_number"] == "4302032033"

    await repository.delete_by_id(record["id"])
    assert repository.students == []
    with pytest.raises(NotFoundError):
        await repository.get(record["id"])
    with pytest.raises(NotFoundError):
        await repository.delete_by_id(record["id"])


@pytest.mark.asyncio
async def test_reads_fall_back_to_cache_when_offline(offline_client):
    repository = StudentRepository(offline_client, "http://test")
    repository.students = [
        {"id": "1", "first_name": "Jane", "last_name": "Doe"},
        {"id": "2", "full_name": "Aron Smith", "company": "Acme", "email": "aron@acme.com"},
    ]

    assert len(await repository.list_all()) == 2
    assert await repository.count() == 2
    assert [s["id"] for s in await repository.search_by_text("ACME")] == ["2"]
    assert [s["id"] for s in await repository.search_by_text("doe")] == ["1"]


@pytest.mark.asyncio
async def test_writes_raise_when_offline(offline_client):
    repository = StudentRepository(offline_client, "http://test")
    with pytest.raises(NetworkError):
        await repository.create(student_data())
    with pytest.raises(NetworkError):
        await repository.delete_by_id("1")
    assert repository.students == []


def api_returning(status_code, body, headers=None):
    def reply(request):
        if request.method == "GET" and request.url.path.endswith("/redirect"):
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)
        return httpx.Response(status_code, content=body, headers=headers or {"content-type": "text/html"})
    return httpx.AsyncClient(transport=httpx.MockTransport(reply))


@pytest.mark.asyncio
async def test_create_rejects_success_without_record():
    async with api_returning(201, b"<html>ok</html>") as api:
        repository = StudentRepository(api, "http://test")
        with pytest.raises(ServerError):
            await repository.create(student_data())
        assert repository.students == []


@pytest.mark.asyncio
async def test_reads_tolerate_malformed_success_bodies():
    async with api_returning(200, b"[1, 2, 3]", {"content-type": "application/json"}) as api:
        repository = StudentRepository(api, "http://test")
        repository.students = [{"id": "1", "first_name": "Jane"}]

        assert await repository.count() == 1
        assert await repository.search_by_text("zzz") == []
        with pytest.raises(ServerError):
            await repository.get("1")


@pytest.mark.asyncio
async def test_non_transport_http_errors_become_network_errors():
    async with api_returning(200, b"{}") as api:
        repository = StudentRepository(api, "http://test")
        with pytest.raises(NetworkError):
            await repository.get("redirect")
