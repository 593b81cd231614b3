import asyncio

import pytest

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.errors import DataSourceError
from exdrf_tv.events import TableEvents
from exdrf_tv.orchestrator import TableStateOrchestrator

SERVER_OPTIONS = {
    "serverPagination": True,
    "serverSorting": True,
    "serverFiltering": True,
}


def make_columns():
    return [
        ColumnDescriptor(id="name"),
        ColumnDescriptor(id="age", filter_type="number"),
    ]


def page_of(params, total=30):
    start = params.page_index * params.page_size
    end = min(start + params.page_size, total)
    return {
        "data": [{"id": i, "name": f"n{i}"} for i in range(start, end)],
        "totalCount": total,
    }


class FutureSource:
    """A data source whose responses are resolved by the test."""

    def __init__(self):
        self.calls = []

    async def __call__(self, params):
        fut = asyncio.get_running_loop().create_future()
        self.calls.append((params, fut))
        return await fut

    def resolve(self, index, value):
        self.calls[index][1].set_result(value)

    def fail(self, index, error):
        self.calls[index][1].set_exception(error)


class RecordingSource:
    """A data source that answers immediately."""

    def __init__(self, total=30):
        self.total = total
        self.calls = []

    async def __call__(self, params):
        self.calls.append(params)
        return page_of(params, self.total)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def test_superseded_response_is_discarded():
    source = FutureSource()

    async def main():
        table = TableStateOrchestrator(
            make_columns(), options=SERVER_OPTIONS, data_source=source
        )
        table.set_global_filter("a")
        table.set_global_filter("b")
        await settle()
        assert len(source.calls) == 3

        # The latest request answers first...
        source.resolve(2, {"data": [{"id": 2}], "totalCount": 1})
        await settle()
        assert table.data == [{"id": 2}]
        assert not table.loading

        # ...then the older ones.
        source.resolve(1, {"data": [{"id": 1}], "total": 1})
        source.resolve(0, {"data": [], "total": 0})
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    assert table.data == [{"id": 2}]
    assert table.total == 1
    assert source.calls[2][0].global_filter == "b"


def test_superseded_failure_is_ignored():
    source = FutureSource()

    async def main():
        table = TableStateOrchestrator(
            make_columns(), options=SERVER_OPTIONS, data_source=source
        )
        table.set_filter("name", "x")
        await settle()
        source.resolve(1, {"data": [{"id": 7}], "totalCount": 1})
        source.fail(0, RuntimeError("late failure"))
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    assert table.error is None
    assert table.data == [{"id": 7}]


def test_fetch_params():
    source = RecordingSource()

    async def main():
        table = TableStateOrchestrator(
            make_columns(),
            options=dict(SERVER_OPTIONS, pageSize=5),
            data_source=source,
        )
        await table.wait_idle()
        table.set_sort("age", "desc")
        table.set_filter("age", [1, 9])
        table.set_global_filter(" bob ")
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    params = source.calls[-1]
    assert params.page_index == 0
    assert params.page_size == 5
    assert params.filters == {"age": [1, 9]}
    assert params.sorting == [{"field": "age", "direction": "desc"}]
    assert params.global_filter == "bob"
    assert table.total == 30
    assert table.pagination.total_pages == 6


def test_rows_are_not_recomputed_locally():
    source = RecordingSource()

    async def main():
        table = TableStateOrchestrator(
            make_columns(), options=SERVER_OPTIONS, data_source=source
        )
        await table.wait_idle()
        table.set_filter("name", "no such name")
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    # The fake source ignores filters; the page is shown as received.
    assert len(table.rows) == 10
    assert len(table.filtered_rows) == 10


def test_one_fetch_per_change():
    source = RecordingSource()

    async def main():
        table = TableStateOrchestrator(
            make_columns(), options=SERVER_OPTIONS, data_source=source
        )
        await table.wait_idle()
        table.set_page(2)
        await table.wait_idle()
        before = len(source.calls)
        # Changes the filter and resets the page.
        table.set_filter("name", "n1")
        await table.wait_idle()
        assert len(source.calls) == before + 1
        assert source.calls[-1].page_index == 0
        return table

    asyncio.run(main())


def test_client_concern_does_not_fetch():
    source = RecordingSource()

    async def main():
        table = TableStateOrchestrator(
            make_columns(),
            options={"serverPagination": True},
            data_source=source,
        )
        await table.wait_idle()
        table.set_sort("name", "desc")
        table.select_all()
        table.visibility.toggle("age")
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    assert len(source.calls) == 1
    assert table.rows[0]["name"] == "n9"
    assert table.selected_count == 10


def test_error_keeps_previous_records(mocker):
    source = FutureSource()
    on_error = mocker.Mock()

    async def main():
        table = TableStateOrchestrator(
            make_columns(),
            options=SERVER_OPTIONS,
            data_source=source,
            events=TableEvents(on_error=on_error),
        )
        await settle()
        source.resolve(0, page_of(source.calls[0][0]))
        await settle()
        table.set_page(1)
        await settle()
        source.fail(1, RuntimeError("backend down"))
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    assert [r["id"] for r in table.data] == list(range(10))
    assert isinstance(table.error, DataSourceError)
    assert table.error.message == "backend down"
    assert table.error.token == 1
    assert isinstance(table.error.original, RuntimeError)
    assert not table.loading
    on_error.assert_called_once_with(table.error)
    assert table.view().error is table.error


def test_invalid_response_is_an_error():
    async def source(params):
        return {"data": "not a list"}

    async def main():
        table = TableStateOrchestrator(
            make_columns(), options=SERVER_OPTIONS, data_source=source
        )
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    assert isinstance(table.error, DataSourceError)
    assert table.data == []


def test_success_clears_error():
    outcomes = [RuntimeError("first"), None]

    async def source(params):
        outcome = outcomes.pop(0)
        if outcome is not None:
            raise outcome
        return page_of(params)

    async def main():
        table = TableStateOrchestrator(
            make_columns(), options=SERVER_OPTIONS, data_source=source
        )
        await table.wait_idle()
        assert table.error is not None
        await table.refresh()
        return table

    table = asyncio.run(main())
    assert table.error is None
    assert len(table.data) == 10


def test_fetch_deferred_without_running_loop(mocker):
    source = RecordingSource()
    on_data = mocker.Mock()
    table = TableStateOrchestrator(
        make_columns(),
        options=SERVER_OPTIONS,
        data_source=source,
        events=TableEvents(on_data=on_data),
    )
    assert table.loading
    table.set_global_filter("x")
    assert source.calls == []

    asyncio.run(table.wait_idle())

    # Only the latest state is fetched.
    assert len(source.calls) == 1
    assert source.calls[0].global_filter == "x"
    assert not table.loading
    on_data.assert_called_once()
    assert on_data.call_args[0][1] == 30


def test_superseded_deferred_requests_are_forgotten():
    source = RecordingSource()
    table = TableStateOrchestrator(
        make_columns(), options=SERVER_OPTIONS, data_source=source
    )
    for i in range(50):
        table.set_global_filter(f"term {i}")
    assert len(table.requests.requests) == 1

    asyncio.run(table.wait_idle())

    assert table.requests.requests == {}
    assert len(source.calls) == 1
    assert source.calls[0].global_filter == "term 49"


def test_deferred_request_dropped_when_loop_request_follows():
    source = RecordingSource()
    table = TableStateOrchestrator(
        make_columns(), options=SERVER_OPTIONS, data_source=source
    )

    async def main():
        table.set_global_filter("a")
        await table.wait_idle()

    asyncio.run(main())

    assert table.requests.requests == {}
    assert [p.global_filter for p in source.calls] == ["a"]
    assert not table.loading


def test_refresh_notifies(mocker):
    source = RecordingSource()
    on_refresh = mocker.Mock()
    table = TableStateOrchestrator(
        make_columns(),
        data_source=source,
        events=TableEvents(on_refresh=on_refresh),
    )
    asyncio.run(table.refresh())
    on_refresh.assert_called_once_with()
    # Client mode: the data source provides the full record set.
    assert len(table.data) == 10
    assert len(source.calls) == 1


def test_reentrant_mutation_from_callback():
    source = RecordingSource()
    state = {}

    def on_data(records, total):
        if "done" not in state:
            state["done"] = True
            state["table"].set_global_filter("again")

    async def main():
        table = TableStateOrchestrator(
            make_columns(),
            options=SERVER_OPTIONS,
            data_source=source,
            events=TableEvents(on_data=on_data),
        )
        state["table"] = table
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    assert len(source.calls) == 2
    assert source.calls[-1].global_filter == "again"
    assert table.global_filter == "again"


@pytest.mark.parametrize("page_index", [3, 5])
def test_page_requested_before_total_is_known(page_index):
    source = RecordingSource(total=100)

    async def main():
        table = TableStateOrchestrator(
            make_columns(), options=SERVER_OPTIONS, data_source=source
        )
        table.set_page(page_index)
        await table.wait_idle()
        return table

    table = asyncio.run(main())
    assert table.pagination.page_index == page_index
    assert source.calls[-1].page_index == page_index
