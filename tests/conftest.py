from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Iterator[Path]:
    """Point config to a temp path so tests don't read user state."""
    from opqueue.core.config import reset_config

    cfg_path = tmp_path / "opqueue.toml"
    monkeypatch.setenv("OPQUEUE_CONFIG", str(cfg_path))
    reset_config()
    yield cfg_path
    reset_config()


@pytest.fixture(autouse=True)
def fresh_pool() -> Iterator[None]:
    """Give every test its own shared worker pool."""
    from opqueue.core.pool import reset_shared_pool

    reset_shared_pool()
    yield
    reset_shared_pool()
