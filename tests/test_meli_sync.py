import pytest

from app.core.errors import BadGatewayError, NotFoundError, SyncFailedError
from app.schemas.catalog import BulkUpsertResponse, Shop
from app.schemas.meli import MeliSizeChart
from app.schemas.sync import FailureStage
from app.services.meli.client import MeliAPIError
from app.services.meli.sync import SyncOrchestrator, batch_id_for
from tests.factories import IMPORTED_AT, make_credential, make_raw_item, make_size_chart


class FakeLifecycle:
    async def ensure_valid(self, owner_id: str):
        return make_credential(owner_id=owner_id)


class FakeShopsClient:
    async def get_shop(self, authorization: str) -> Shop:
        return Shop(id="shop-1", name="Tienda")


class FakeFetcher:
    def __init__(self, raw_items: list[dict]):
        self.raw_items = raw_items

    async def fetch_all_items(self, credential, page_size=None):
        return self.raw_items


class FakeItemsClient:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.batches: list[list] = []

    async def bulk_upsert(self, items):
        self.batches.append(items)
        if self.error is not None:
            raise self.error
        return BulkUpsertResponse(
            total_items=len(items), created_count=len(items), updated_count=0
        )


class FakeChartClient:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[str] = []

    async def get_size_chart(self, chart_id: str, access_token: str) -> MeliSizeChart:
        self.calls.append(chart_id)
        if self.error is not None:
            raise self.error
        return MeliSizeChart.model_validate(make_size_chart(chart_id))


def _orchestrator(raw_items, items_client=None, chart_client=None) -> SyncOrchestrator:
    return SyncOrchestrator(
        FakeLifecycle(),
        meli_client=chart_client or FakeChartClient(),
        shops_client=FakeShopsClient(),
        items_client=items_client or FakeItemsClient(),
        fetcher=FakeFetcher(raw_items),
        clock=lambda: IMPORTED_AT,
    )


def _with_size_grid(raw: dict, chart_id: str = "3947") -> dict:
    raw["attributes"].append(
        {"id": "SIZE_GRID_ID", "name": "Guía de talles", "value_id": None, "value_name": chart_id}
    )
    return raw


@pytest.mark.asyncio
async def test_malformed_items_do_not_abort_the_run():
    raw_items = [make_raw_item(f"MLA{i:03d}") for i in range(120)]
    raw_items[10] = make_raw_item("MLA010", pictures="not-a-list")
    raw_items[70] = make_raw_item("MLA070", variations=[{"available_quantity": "lots"}])
    items_client = FakeItemsClient()

    result = await _orchestrator(raw_items, items_client=items_client).run("owner-1", "Bearer jwt")

    assert result.batch_id == "meli-owner-1"
    assert result.total_items == 120
    assert result.success_count == 118
    assert result.failure_count == 2
    assert [f.external_id for f in result.failed_items] == ["MLA010", "MLA070"]
    assert all(f.failure_stage == FailureStage.TRANSFORM for f in result.failed_items)
    assert result.failed_items[0].title == "Remera lisa"
    assert len(items_client.batches) == 1
    assert len(items_client.batches[0]) == 118


@pytest.mark.asyncio
async def test_failed_load_reclassifies_every_item():
    raw_items = [make_raw_item(f"MLA{i}") for i in range(10)]
    items_client = FakeItemsClient(
        error=BadGatewayError("unexpected response from items api bulk upsert, status: 500")
    )

    with pytest.raises(SyncFailedError) as exc_info:
        await _orchestrator(raw_items, items_client=items_client).run("owner-1", "Bearer jwt")

    error = exc_info.value
    assert error.code == "etl_failed"
    assert error.message == "all 10 items failed to load"
    result = error.result
    assert result.created_count == 0
    assert result.updated_count == 0
    assert result.failure_count == 10
    assert {f.failure_stage for f in result.failed_items} == {FailureStage.LOAD}
    assert result.failed_items[0].error_message.endswith("status: 500")
    body = error.to_dict()
    assert body["error"] == "etl_failed"
    assert body["result"]["failure_count"] == 10


@pytest.mark.asyncio
async def test_no_items_is_not_found():
    with pytest.raises(NotFoundError) as exc_info:
        await _orchestrator([]).run("owner-1", "Bearer jwt")

    assert exc_info.value.message == "no items found from MercadoLibre"


@pytest.mark.asyncio
async def test_all_transforms_failing_skips_load():
    items_client = FakeItemsClient()
    raw_items = [make_raw_item("MLA1", pictures=5), {"title": "no id"}]

    with pytest.raises(SyncFailedError) as exc_info:
        await _orchestrator(raw_items, items_client=items_client).run("owner-1", "Bearer jwt")

    assert items_client.batches == []
    assert [f.external_id for f in exc_info.value.result.failed_items] == ["MLA1", ""]


@pytest.mark.asyncio
async def test_size_chart_fetched_once_and_applied():
    raw_items = [_with_size_grid(make_raw_item(f"MLA{i}")) for i in range(3)]
    chart_client = FakeChartClient()
    items_client = FakeItemsClient()

    result = await _orchestrator(
        raw_items, items_client=items_client, chart_client=chart_client
    ).run("owner-1", "Bearer jwt")

    assert result.success_count == 3
    assert chart_client.calls == ["3947"]
    guides = [item.size_guide for item in items_client.batches[0]]
    assert all(g is not None and g.external_size_grid_id == "3947" for g in guides)


@pytest.mark.asyncio
async def test_size_chart_failure_is_not_fatal():
    raw_items = [_with_size_grid(make_raw_item("MLA1")), make_raw_item("MLA2")]
    chart_client = FakeChartClient(error=MeliAPIError("timeout calling MercadoLibre size chart endpoint"))
    items_client = FakeItemsClient()

    result = await _orchestrator(
        raw_items, items_client=items_client, chart_client=chart_client
    ).run("owner-1", "Bearer jwt")

    assert result.success_count == 2
    assert result.failure_count == 0
    assert [item.size_guide for item in items_client.batches[0]] == [None, None]


@pytest.mark.asyncio
async def test_items_carry_run_provenance():
    items_client = FakeItemsClient()

    await _orchestrator([make_raw_item("MLA1")], items_client=items_client).run(
        "owner-7", "Bearer jwt"
    )

    item = items_client.batches[0][0]
    assert item.shop_id == "shop-1"
    assert item.user_id == "owner-7"
    assert item.source.batch_id == batch_id_for("owner-7") == "meli-owner-7"
    assert item.source.imported_at == IMPORTED_AT
