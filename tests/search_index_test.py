import pytest

from quickimage.core.exceptions import InvalidRequestError
from quickimage.storage.search_index import SearchIndex


@pytest.fixture
def index(store):
    return SearchIndex(store)


@pytest.mark.asyncio
async def test_search_is_case_insensitive(index, save_image):
    await save_image("a1", "a red bicycle")

    assert [m.id for m in await index.search("bicycle")] == ["a1"]
    assert [m.id for m in await index.search("BICYCLE")] == ["a1"]
    assert await index.search("unicycle") == []


@pytest.mark.asyncio
async def test_search_skips_orphaned_sidecars(index, store, save_image):
    await save_image("a1", "a red bicycle")
    await save_image("a2", "a blue bicycle")
    (store.base_path / "a2.png").unlink()

    results = await index.search("bicycle")

    assert [m.id for m in results] == ["a1"]


@pytest.mark.asyncio
async def test_empty_query_is_rejected(index, save_image):
    await save_image("a1", "anything")

    with pytest.raises(InvalidRequestError):
        await index.search("")
    with pytest.raises(InvalidRequestError):
        await index.search("   ")


@pytest.mark.asyncio
async def test_no_matches_is_an_empty_list(index):
    # Searching an empty store is valid, it just finds nothing
    assert await index.search("castle") == []


@pytest.mark.asyncio
async def test_newest_first_and_limit(index, save_image):
    for image_id in ("a1", "a2", "a3", "a4"):
        await save_image(image_id, f"castle number {image_id}")
    await save_image("a5", "a lighthouse")

    newest = await index.search("castle", limit=2, newest_first=True)
    capped = await index.search("castle", limit=3)

    assert [m.id for m in newest] == ["a4", "a3"]
    assert len(capped) == 3
    assert {m.id for m in capped} <= {"a1", "a2", "a3", "a4"}


@pytest.mark.asyncio
async def test_search_matches_inside_words(index, save_image):
    await save_image("a1", "Sunset over the MOUNTAINS")

    results = await index.search("mountain")

    assert results[0].prompt == "Sunset over the MOUNTAINS"


@pytest.mark.asyncio
async def test_surrounding_spaces_are_part_of_the_query(index, save_image):
    await save_image("a1", "a tired cat")
    await save_image("a2", "a red bicycle")

    assert [m.id for m in await index.search(" red")] == ["a2"]
    assert {m.id for m in await index.search("red")} == {"a1", "a2"}
