from pathlib import Path

import pytest

from micro_blade import Engine
from micro_blade import MemorySourceStore


@pytest.fixture
def store() -> MemorySourceStore:
    return MemorySourceStore()


@pytest.fixture
def engine(tmp_path: Path, store: MemorySourceStore) -> Engine:
    return Engine.create(
        template_path=tmp_path / "templates",
        compiled_path=tmp_path / "compiled",
        store=store,
    )


@pytest.fixture
def template_dir(tmp_path: Path) -> Path:
    path = tmp_path / "templates"
    path.mkdir()
    return path


@pytest.fixture
def file_engine(tmp_path: Path, template_dir: Path) -> Engine:
    return Engine.create(
        template_path=template_dir,
        compiled_path=tmp_path / "compiled",
    )
