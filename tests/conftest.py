"""
Pytest configuration and shared fixtures for the driver diagram test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset global state before each test to ensure isolation."""
    from infrastructure.config import reset_config
    from infrastructure.logger import LoggerConfig, configure_logger

    # Fresh in-memory mutation log and configuration for each test
    configure_logger(LoggerConfig())
    reset_config()

    yield

    reset_config()


@pytest.fixture
def fresh_graph():
    """Provide a fresh DiagramGraph instance."""
    from core.graph_db import DiagramGraph
    return DiagramGraph()


@pytest.fixture
def session():
    """Provide a fresh, empty DiagramSession using the default configuration."""
    from core.session import DiagramSession
    return DiagramSession()


@pytest.fixture
def sample_diagram(session):
    """
    Provide a session holding a small diagram.

    1 Aim
    ├── 2 Primary           (colour Red)
    │   ├── 4 Secondary
    │   │   └── 6 Change    (extra parent 5)
    │   └── 5 Secondary
    └── 3 Primary
    """
    s = session
    s.create_node("aim", "Reduce ED wait time to under 4 hours")
    s.create_node("primary", "Triage speed", parent_id="1", color="#F4CCCC")
    s.create_node("primary", "Bed availability", parent_id="1")
    s.create_node("secondary", "Nurse-led triage", parent_id="2")
    s.create_node("secondary", "Streaming to minors", parent_id="2")
    s.create_node("change", "Pilot rapid assessment bay", parent_id="4")
    s.add_edge("5", "6")
    return s
