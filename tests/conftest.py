"""
Pytest configuration and fixtures for Pairline tests.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from pairline.session import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))


@pytest.fixture
def sample_phone():
    """Sample local phone number for testing."""
    return "0771234567"


@pytest.fixture
def sample_jid():
    """Chat id the sample phone resolves to."""
    return "94771234567@s.whatsapp.net"


@pytest.fixture
def session_dir(tmp_path):
    """Credential storage directory with a fake credential file."""
    path = tmp_path / ".wwebjs_auth" / "session-inventory-wa"
    path.mkdir(parents=True)
    (path / "creds.json").write_text("{}")
    return path


@pytest.fixture
def upload_file(tmp_path):
    """A transient upload on disk."""
    path = tmp_path / "uploads" / "a1b2c3"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"%PDF-1.4 fake invoice")
    return path
