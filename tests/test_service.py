"""
TreePulse — Integration Tests: Visualizer Service

Tests:
1. Monitoring lifecycle and periodic re-scan
2. Trigger injection and simulated cascades
3. Views, statistics and export
4. Runtime settings
5. Construction
"""
import asyncio
import json

import pytest

from treepulse.models import FilterMode, TriggerKind
from treepulse.propagation import PropagationTracker
from treepulse.registry import NodeRegistry
from treepulse.service import VisualizerService


@pytest.fixture
def service(adapter, fast_settings):
    return VisualizerService(adapter, fast_settings)


# ═══════════════════════════════════════════════════════════
# 1. Lifecycle
# ═══════════════════════════════════════════════════════════

class TestLifecycle:

    def test_start_scans_immediately(self, service):
        assert service.registry.node_count == 0
        service.start_monitoring()
        assert service.is_monitoring
        assert service.registry.node_count == 7
        service.stop_monitoring()

    def test_stop_keeps_tree_and_history(self, service):
        service.start_monitoring()
        service.record_activation("main", TriggerKind.USER_INTERACTION)
        service.stop_monitoring()

        assert service.is_monitoring is False
        assert service.registry.node_count == 7
        assert len(service.monitor.events()) == 1

    def test_disabled_service_does_nothing(self, adapter, fast_settings):
        settings = fast_settings.model_copy(update={"ENABLED": False})
        service = VisualizerService(adapter, settings)
        service.start_monitoring()
        assert service.is_monitoring is False
        assert service.registry.node_count == 0

    def test_periodic_rescan_picks_up_changes(self, service, adapter, sample_roots):
        async def run():
            service.start_monitoring()
            assert service.registry.node_count == 7
            adapter.set_roots(sample_roots[1:])
            await asyncio.sleep(0.1)
            count = service.registry.node_count
            service.stop_monitoring()
            return count

        assert asyncio.run(run()) == 1

    def test_stop_halts_rescans(self, service, adapter, sample_roots):
        async def run():
            service.start_monitoring()
            service.stop_monitoring()
            adapter.set_roots(sample_roots[1:])
            await asyncio.sleep(0.05)
            return service.registry.node_count

        assert asyncio.run(run()) == 7

    def test_refresh(self, service, adapter, sample_roots):
        service.refresh()
        adapter.set_roots(sample_roots[1:])
        service.refresh()
        assert service.registry.node_count == 1


# ═══════════════════════════════════════════════════════════
# 2. Trigger Injection
# ═══════════════════════════════════════════════════════════

class TestTriggers:

    def test_record_activation(self, service):
        service.refresh()
        event = service.record_activation("card-1", TriggerKind.ASYNC_OPERATION)
        assert event.node_id == "card-1"
        assert event.trigger == TriggerKind.ASYNC_OPERATION
        assert service.queries.find_by_id("card-1").activation_count == 1

    def test_record_activation_unknown_node(self, service):
        service.refresh()
        assert service.record_activation("ghost") is None
        assert service.monitor.events() == []

    def test_simulate_records_every_step(self, service):
        service.refresh()

        async def run():
            cascade = service.simulate("main", TriggerKind.SIGNAL_UPDATE, "signal set")
            await asyncio.wait_for(cascade.wait(), timeout=2)

        asyncio.run(run())
        events = service.monitor.events()
        assert [e.node_id for e in events] == ["main", "list", "card-1", "card-2"]
        assert all(e.is_manual for e in events)
        assert all(e.trigger == TriggerKind.SIGNAL_UPDATE for e in events)

        view = {n.id: n for n in service.graph_view().nodes}
        assert view["main"].is_trigger_source
        assert view["card-2"].propagation_depth == 2

    def test_simulate_unknown_root(self, service):
        service.refresh()

        async def run():
            return service.simulate("ghost")

        assert asyncio.run(run()) is None
        assert service.monitor.events() == []

    def test_clear_history(self, service):
        service.refresh()
        service.monitor.start_cycle()
        service.record_activation("main")
        service.monitor.end_cycle()
        service.clear_history()

        assert service.monitor.events() == []
        assert service.monitor.cycles() == []
        assert service.queries.modified_count() == 0
        assert service.registry.node_count == 7


# ═══════════════════════════════════════════════════════════
# 3. Views & Export
# ═══════════════════════════════════════════════════════════

class TestViews:

    def test_statistics(self, service):
        service.refresh()
        service.monitor.start_cycle()
        service.record_activation("main")
        service.record_activation("main")
        service.monitor.end_cycle()

        assert service.statistics() == {
            "total_nodes": 7,
            "lazy_nodes": 2,
            "active_nodes": 1,
            "modified_nodes": 1,
            "total_events": 2,
            "total_cycles": 1,
        }

    def test_export_data(self, service):
        service.refresh()
        service.record_activation("list", TriggerKind.INPUT_CHANGE)
        data = json.loads(service.export_data())

        assert set(data) == {"timestamp", "config", "tree", "events", "propagation", "statistics"}
        assert data["config"]["FILTER_MODE"] == "all"
        assert [root["id"] for root in data["tree"]] == ["app", "overlay"]
        assert data["tree"][0]["children"][1]["children"][0]["id"] == "list"
        assert data["events"][0]["trigger"] == "input-change"
        assert data["statistics"]["total_events"] == 1

    def test_filtered_tree_uses_settings(self, service):
        service.refresh()
        service.update_settings(FILTER_MODE=FilterMode.LAZY_ONLY, EXCLUDE_NODES=["app-header"])
        assert [n.id for n in service.filtered_tree()] == ["list"]

    def test_focus(self, service):
        service.refresh()
        assert [n.id for n in service.focus("card-1")] == ["app", "main", "list", "card-1"]
        assert service.focus("ghost") == []

    def test_graph_view_on_empty_tree(self, service):
        view = service.graph_view()
        assert view.nodes == []
        assert view.edges == []


# ═══════════════════════════════════════════════════════════
# 4. Runtime Settings
# ═══════════════════════════════════════════════════════════

class TestSettingsUpdates:

    def test_history_size_applies_immediately(self, service):
        service.refresh()
        for _ in range(5):
            service.record_activation("app")
        settings = service.update_settings(MAX_HISTORY_SIZE=2)
        assert settings.MAX_HISTORY_SIZE == 2
        assert service.monitor.max_history_size == 2
        assert len(service.monitor.events()) == 2

    def test_invalid_update_rejected(self, service):
        with pytest.raises(ValueError):
            service.update_settings(MAX_HISTORY_SIZE=0)
        assert service.settings.MAX_HISTORY_SIZE == 1000

    def test_disabling_stops_monitoring_and_cascades(self, service):
        settings = service.settings.model_copy(update={"PROPAGATION_STEP_DELAY_MS": 50})
        service.tracker = PropagationTracker(service.registry, settings)

        async def run():
            service.start_monitoring()
            cascade = service.tracker.simulate("app")
            service.update_settings(ENABLED=False)
            await asyncio.sleep(0.15)
            return cascade

        cascade = asyncio.run(run())
        assert service.is_monitoring is False
        assert cascade.cancelled
        assert service.tracker.active_cascades == 0
        assert service.queries.find_by_id("header").activation_count == 0
        assert service.registry.node_count == 7

    def test_enabling_starts_monitoring(self, adapter, fast_settings):
        settings = fast_settings.model_copy(update={"ENABLED": False})
        service = VisualizerService(adapter, settings)
        service.start_monitoring()
        assert service.is_monitoring is False

        service.update_settings(ENABLED=True)
        assert service.is_monitoring is True
        assert service.registry.node_count == 7
        service.stop_monitoring()

    def test_unchanged_enabled_leaves_monitoring_alone(self, service):
        service.update_settings(ENABLED=True)
        assert service.is_monitoring is False


# ═══════════════════════════════════════════════════════════
# 5. Construction
# ═══════════════════════════════════════════════════════════

class TestConstruction:

    def test_adapter_with_injected_registry_rejected(self, adapter):
        with pytest.raises(ValueError):
            VisualizerService(adapter, registry=NodeRegistry(adapter))

    def test_injected_registry_is_used(self, registry, fast_settings):
        service = VisualizerService(settings=fast_settings, registry=registry)
        assert service.registry is registry
        assert service.queries.count() == 7


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
