import sys
from pathlib import Path

import httpx
import pytest

# Allow `import marktree` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _block_real_network(monkeypatch):
    """Tests must never reach the network; httpx.MockTransport is still allowed."""

    def _blocked(*_args, **_kwargs):
        raise AssertionError("Real HTTP request attempted during tests")

    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", _blocked)
