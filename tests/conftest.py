"""Shared fixtures for the Pump Advisor test suite.

Loads the REAL bundled catalog (data/pump_catalog.json) so ranking tests
pin actual catalog behaviour.
"""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models import Application, ConversationState, WaterSource, Problem
from pump_catalog import load_catalog


# =============================================================================
# CATALOG FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def catalog():
    """The bundled catalog, loaded once."""
    return load_catalog(PROJECT_ROOT / "data" / "pump_catalog.json")


# =============================================================================
# STATE FIXTURES
# =============================================================================

@pytest.fixture
def empty_state():
    """Fresh ConversationState with no data."""
    return ConversationState()


@pytest.fixture
def house_state():
    """3-floor house, 2 bathrooms, weak pressure; water source still unknown."""
    return ConversationState(
        application=Application.DOMESTIC_WATER,
        floors=3,
        bathrooms=2,
        problem=Problem.LOW_PRESSURE,
    )


@pytest.fixture
def house_on_mains(house_state):
    return house_state.model_copy(update={"water_source": WaterSource.MAINS})


# =============================================================================
# CONVERSATION FIXTURES
# =============================================================================

HOUSE_MESSAGE = "I need a pump for my 3-floor house, 2 bathrooms, water pressure is weak"


@pytest.fixture
def house_history():
    return [{"role": "user", "content": HOUSE_MESSAGE}]


@pytest.fixture
def house_mains_history(house_history):
    return house_history + [
        {"role": "assistant", "content": "Where does your water come from?"},
        {"role": "user", "content": "it's from the city mains"},
    ]
