"""
Shared pytest fixtures for tournament engine tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
import tempfile

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Keep the app's import-time data directory out of the repository
os.environ.setdefault('TT_ENGINE_DATA_DIR', tempfile.mkdtemp(prefix='tt-engine-tests-'))

from ttengine.config import get_default_settings
from ttengine.models import Participant


def make_participants(count, top_rating=2000, step=100):
    """Participants 1..count rated so that member id equals rating rank."""
    return [Participant(i, top_rating - step * (i - 1), f"Player {i}") for i in range(1, count + 1)]


@pytest.fixture
def players():
    """Factory fixture: players(n) builds n rated participants."""
    return make_participants


@pytest.fixture
def five_players():
    return make_participants(5)


@pytest.fixture
def eight_players():
    return make_participants(8)


@pytest.fixture
def settings(tmp_path):
    """Default settings pointing at a temporary data directory."""
    data = get_default_settings()
    data['data_dir'] = str(tmp_path / 'data')
    data['log_level'] = 'WARNING'
    return data


@pytest.fixture
def client(settings):
    """Flask test client backed by an empty temporary data directory."""
    import app as app_module
    app_module.init_app(settings)
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client
