"""
Shared fixtures: a small host tree and fast settings.
"""
import copy

import pytest

from treepulse.config import Settings
from treepulse.host import StaticHostAdapter
from treepulse.registry import NodeRegistry


SAMPLE_ROOTS = [
    {
        "id": "app", "name": "AppComponent", "selector": "app-root",
        "children": [
            {"id": "header", "name": "HeaderComponent", "selector": "app-header",
             "update_strategy": "lazy"},
            {
                "id": "main", "name": "MainComponent", "selector": "app-main",
                "children": [
                    {
                        "id": "list", "name": "UserListComponent", "selector": "app-user-list",
                        "update_strategy": "lazy",
                        "children": [
                            {"id": "card-1", "name": "UserCardComponent", "selector": "app-user-card"},
                            {"id": "card-2", "name": "UserCardComponent", "selector": "app-user-card"},
                        ],
                    },
                ],
            },
        ],
    },
    {"id": "overlay", "type_name": "DebugPanelComponent"},
]


@pytest.fixture
def sample_roots():
    return copy.deepcopy(SAMPLE_ROOTS)


@pytest.fixture
def fast_settings():
    return Settings(
        ENABLED=True,
        MAX_HISTORY_SIZE=1000,
        RESCAN_INTERVAL_MS=10,
        PROPAGATION_STEP_DELAY_MS=1,
        PROPAGATION_SIBLING_DELAY_MS=0.5,
    )


@pytest.fixture
def adapter(sample_roots):
    return StaticHostAdapter(sample_roots)


@pytest.fixture
def registry(adapter):
    reg = NodeRegistry(adapter)
    reg.scan()
    return reg
