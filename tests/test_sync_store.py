"""Tests for SyncStore selection reconciliation and thread actions."""

import asyncio

import pytest

from agent_console.core.errors import GatewayError, PreconditionError
from agent_console.core.sync import SyncStore


class TestRefreshWorkspaces:
    @pytest.mark.asyncio
    async def test_selects_first_and_cascades(self, store, mock_client):
        await store.refresh_workspaces()

        assert [w.id for w in store.workspaces] == ["w1", "w2"]
        assert store.active_workspace_id == "w1"
        assert [t.id for t in store.threads] == ["t1"]
        assert store.active_thread_id == "t1"
        assert store.thread_id_input == "t1"
        mock_client.list_threads.assert_awaited_once_with("w1", limit=40, sort_key="updated_at")

    @pytest.mark.asyncio
    async def test_keeps_existing_selection(self, store, mock_client):
        store.active_workspace_id = "w2"

        await store.refresh_workspaces()

        assert store.active_workspace_id == "w2"
        mock_client.list_threads.assert_awaited_once_with("w2", limit=40, sort_key="updated_at")

    @pytest.mark.asyncio
    async def test_missing_selection_falls_back_to_first(self, store, mock_client):
        store.active_workspace_id = "gone"
        store.active_thread_id = "t-old"

        await store.refresh_workspaces()

        assert store.active_workspace_id == "w1"
        assert store.active_thread_id == "t1"

    @pytest.mark.asyncio
    async def test_empty_list_clears_everything(self, store, mock_client):
        store.active_workspace_id = "w1"
        mock_client.list_workspaces.return_value = {"workspaces": []}

        await store.refresh_workspaces()

        assert store.workspaces == []
        assert store.active_workspace_id == ""
        assert store.threads == []
        assert store.active_thread_id == ""
        mock_client.list_threads.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_numeric_workspace_name_is_accepted(self, store, mock_client):
        mock_client.list_workspaces.return_value = {"workspaces": [{"id": "w1", "name": 7}]}

        await store.refresh_workspaces()

        assert store.active_workspace.label == "7"

    @pytest.mark.asyncio
    async def test_is_idempotent(self, store):
        await store.refresh_workspaces()
        first = (store.active_workspace_id, store.active_thread_id)

        await store.refresh_workspaces()

        assert (store.active_workspace_id, store.active_thread_id) == first

    @pytest.mark.asyncio
    async def test_failure_propagates_and_keeps_state(self, store, mock_client):
        await store.refresh_workspaces()
        mock_client.list_workspaces.side_effect = GatewayError("invalid API token", status_code=401)

        with pytest.raises(GatewayError):
            await store.refresh_workspaces()

        assert store.active_workspace_id == "w1"
        assert [w.id for w in store.workspaces] == ["w1", "w2"]

    @pytest.mark.asyncio
    async def test_superseded_refresh_is_discarded(self, store, mock_client):
        release_first = asyncio.Event()
        calls = []

        async def list_workspaces():
            calls.append(len(calls))
            if len(calls) == 1:
                await release_first.wait()
                return {"workspaces": [{"id": "old"}]}
            return {"workspaces": [{"id": "w2"}]}

        mock_client.list_workspaces.side_effect = list_workspaces

        first = asyncio.create_task(store.refresh_workspaces())
        await asyncio.sleep(0)
        await store.refresh_workspaces()
        release_first.set()
        await first

        assert [w.id for w in store.workspaces] == ["w2"]
        assert store.active_workspace_id == "w2"


class TestRefreshThreads:
    @pytest.mark.asyncio
    async def test_without_workspace_clears_threads(self, store, mock_client):
        store.threads = ["stale"]

        await store.refresh_threads()

        assert store.threads == []
        mock_client.list_threads.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_keeps_selected_thread_when_present(self, store, mock_client):
        store.active_workspace_id = "w1"
        store.active_thread_id = "t2"
        mock_client.list_threads.return_value = {"threads": [{"id": "t1"}, {"id": "t2"}]}

        await store.refresh_threads()

        assert store.active_thread_id == "t2"

    @pytest.mark.asyncio
    async def test_records_next_cursor(self, store, mock_client):
        store.active_workspace_id = "w1"
        mock_client.list_threads.return_value = {"result": {"data": [{"id": "t1"}], "nextCursor": "c2"}}

        await store.refresh_threads()

        assert [t.id for t in store.threads] == ["t1"]
        assert store.next_cursor == "c2"

    @pytest.mark.asyncio
    async def test_empty_list_clears_selection(self, store, mock_client):
        store.active_workspace_id = "w1"
        store.active_thread_id = "t1"
        mock_client.list_threads.return_value = {"threads": []}

        await store.refresh_threads()

        assert store.active_thread_id == ""
        assert store.thread_id_input == ""

    @pytest.mark.asyncio
    async def test_result_for_previous_workspace_is_discarded(self, store, mock_client):
        await store.refresh_workspaces()
        release = asyncio.Event()

        async def slow_threads(workspace_id, **kwargs):
            await release.wait()
            return {"threads": [{"id": "from-w1"}]}

        mock_client.list_threads.side_effect = slow_threads
        pending = asyncio.create_task(store.refresh_threads())
        await asyncio.sleep(0)

        store.active_workspace_id = "w2"
        store.threads = []
        release.set()
        await pending

        assert store.threads == []

    @pytest.mark.asyncio
    async def test_last_issued_refresh_wins(self, store, mock_client):
        store.active_workspace_id = "w1"
        release_first = asyncio.Event()
        calls = []

        async def list_threads(workspace_id, **kwargs):
            calls.append(workspace_id)
            if len(calls) == 1:
                await release_first.wait()
                return {"threads": [{"id": "older"}]}
            return {"threads": [{"id": "newer"}]}

        mock_client.list_threads.side_effect = list_threads

        first = asyncio.create_task(store.refresh_threads())
        await asyncio.sleep(0)
        await store.refresh_threads()
        release_first.set()
        await first

        assert [t.id for t in store.threads] == ["newer"]
        assert store.active_thread_id == "newer"


class TestSelection:
    @pytest.mark.asyncio
    async def test_select_workspace_clears_thread_and_refreshes(self, store, mock_client):
        await store.refresh_workspaces()
        mock_client.list_threads.return_value = {"threads": [{"id": "t9"}]}

        await store.select_workspace("w2")

        assert store.active_workspace_id == "w2"
        assert store.active_thread_id == "t9"
        mock_client.list_threads.assert_awaited_with("w2", limit=40, sort_key="updated_at")

    def test_select_thread_updates_input(self, store):
        store.select_thread("t5")
        assert store.active_thread_id == "t5"
        assert store.thread_id_input == "t5"

    def test_adopt_requires_active_workspace(self, store):
        store.active_workspace_id = "w1"
        assert store.adopt_thread("w2", "t1") is False
        assert store.active_thread_id == ""

    def test_adopt_when_nothing_selected(self, store):
        store.active_workspace_id = "w1"
        assert store.adopt_thread("w1", "t1") is True
        assert store.active_thread_id == "t1"

    def test_adopt_keeps_existing_selection(self, store):
        store.active_workspace_id = "w1"
        store.select_thread("t1")
        assert store.adopt_thread("w1", "t2") is False
        assert store.active_thread_id == "t1"


class TestThreadActions:
    @pytest.mark.asyncio
    async def test_start_thread_selects_new_thread(self, store, mock_client, event_log):
        await store.refresh_workspaces()
        mock_client.list_threads.return_value = {"threads": [{"id": "t2"}, {"id": "t1"}]}

        thread_id = await store.start_thread()

        assert thread_id == "t2"
        assert store.active_thread_id == "t2"
        assert store.thread_id_input == "t2"
        mock_client.start_thread.assert_awaited_once_with("w1")
        assert event_log.entries()[-1].kind == "thread/start"

    @pytest.mark.asyncio
    async def test_start_thread_without_id_keeps_selection(self, store, mock_client):
        await store.refresh_workspaces()
        mock_client.start_thread.return_value = {"result": {}}

        assert await store.start_thread() is None
        assert store.active_thread_id == "t1"

    @pytest.mark.asyncio
    async def test_start_thread_requires_workspace(self, store, mock_client):
        with pytest.raises(PreconditionError, match="Select a workspace first"):
            await store.start_thread()
        mock_client.start_thread.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resume_requires_thread(self, store, mock_client):
        store.active_workspace_id = "w1"

        with pytest.raises(PreconditionError, match="Select a thread first"):
            await store.resume_thread()
        mock_client.resume_thread.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resume_prefers_thread_id_input(self, store, mock_client, event_log):
        store.active_workspace_id = "w1"
        store.active_thread_id = "t1"
        store.thread_id_input = "  t7 "

        await store.resume_thread()

        mock_client.resume_thread.assert_awaited_once_with("w1", "t7")
        assert event_log.entries()[-1].kind == "thread/resume"

    @pytest.mark.asyncio
    async def test_send_message_uses_and_clears_draft(self, store, mock_client, event_log):
        await store.refresh_workspaces()
        store.message_draft = "hello there"

        await store.send_message()

        mock_client.send_message.assert_awaited_once_with("w1", "t1", "hello there", access_mode="current")
        assert store.message_draft == ""
        assert event_log.entries()[-1].kind == "thread/message"

    @pytest.mark.asyncio
    async def test_send_message_blank_text(self, store, mock_client):
        await store.refresh_workspaces()

        with pytest.raises(PreconditionError, match="Enter a message first"):
            await store.send_message("   ")
        mock_client.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_message_failure_keeps_draft(self, store, mock_client):
        await store.refresh_workspaces()
        store.message_draft = "keep me"
        mock_client.send_message.side_effect = GatewayError("daemon unavailable", status_code=502)

        with pytest.raises(GatewayError):
            await store.send_message()

        assert store.message_draft == "keep me"

    @pytest.mark.asyncio
    async def test_send_message_requires_workspace_before_thread(self, store):
        with pytest.raises(PreconditionError, match="Select a workspace first"):
            await store.send_message("hi")


class TestRpcAndDrawings:
    @pytest.mark.asyncio
    async def test_run_rpc_parses_params(self, store, mock_client):
        mock_client.rpc.return_value = {"result": [1]}

        result = await store.run_rpc("list_workspaces", '{"a": 1}')

        mock_client.rpc.assert_awaited_once_with("list_workspaces", {"a": 1})
        assert result == {"result": [1]}
        assert store.last_rpc_result == {"result": [1]}

    @pytest.mark.asyncio
    async def test_run_rpc_blank_params_default_to_object(self, store, mock_client):
        await store.run_rpc("ping", "  ")
        mock_client.rpc.assert_awaited_once_with("ping", {})

    @pytest.mark.asyncio
    async def test_run_rpc_requires_method(self, store, mock_client):
        with pytest.raises(PreconditionError, match="RPC method is required"):
            await store.run_rpc("  ")
        mock_client.rpc.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_rpc_rejects_bad_json(self, store, mock_client):
        with pytest.raises(PreconditionError, match="Params must be valid JSON"):
            await store.run_rpc("x", "{not json")
        mock_client.rpc.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_drawings(self, store, mock_client):
        mock_client.drawings.return_value = {
            "workspaces": [
                {"workspace": {"id": "w1", "name": "repo"}, "threads": [{"id": "a"}, {"id": "b"}, {"id": "c"}], "nextCursor": "c4"},
                {"workspace": {"id": "w2"}, "threads": [], "error": "daemon unavailable"},
            ]
        }

        snapshots = await store.refresh_drawings()

        assert [s.workspace.id for s in snapshots] == ["w1", "w2"]
        assert snapshots[0].thread_count == 3
        assert snapshots[0].next_cursor == "c4"
        assert snapshots[1].error == "daemon unavailable"


def test_default_event_log_is_created(mock_client):
    store = SyncStore(mock_client)
    assert len(store.event_log) == 0
