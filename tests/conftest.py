"""
Shared fixtures for the test suite.

The analyzer is replaced by a tiny Python script run with ``sys.executable``,
so every test that touches the runner goes through a real subprocess.
The script's behaviour is read from a JSON sidecar written by the fixture.
"""

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from chartpack.config import Settings
from chartpack.main import app, get_settings

# ---------------------------------------------------------------------------
# Sample analyzer output
# ---------------------------------------------------------------------------

HITS: List[Dict[str, Any]] = [
    {"t": 0.5, "lane": 0, "kind": "kick"},
    {"t": 1.0, "lane": 1, "kind": "snare"},
]


def sample_raw_chart(**overrides: Any) -> Dict[str, Any]:
    """Analyzer output in its native (legacy) shape."""
    raw: Dict[str, Any] = {
        "schemaVersion": 1,
        "meta": {"title": "X", "bpm": 120},
        "timeline": {},
        "barsFlat": [{"index": 0, "start": 0.0}, {"index": 1, "start": 2.0}],
        "hits": list(HITS),
        "profiles": {
            "defaults": {"density": 0.5},
            "named": {"Hard": {"density": 0.9}},
        },
    }
    raw.update(overrides)
    return raw


# ---------------------------------------------------------------------------
# Fake analyzer
# ---------------------------------------------------------------------------

_FAKE_ANALYZER = '''\
import json
import os
import sys
import time

with open({behaviour!r}, "r", encoding="utf-8") as f:
    behaviour = json.load(f)

with open({calls!r}, "a", encoding="utf-8") as f:
    f.write(json.dumps({{
        "argv": sys.argv[1:],
        "input_exists": os.path.exists(sys.argv[1]),
        "input_size": os.path.getsize(sys.argv[1]) if os.path.exists(sys.argv[1]) else None,
    }}) + "\\n")

print("analyzing", sys.argv[1])
if behaviour["stderr"]:
    sys.stderr.write(behaviour["stderr"])
    sys.stderr.flush()
if behaviour["sleep"]:
    time.sleep(behaviour["sleep"])
if behaviour["output"] is not None:
    with open(sys.argv[2], "w", encoding="utf-8") as f:
        f.write(behaviour["output"])
sys.exit(behaviour["exit_code"])
'''


class FakeAnalyzer:
    def __init__(self, root: Path):
        self.root = root
        self.script = root / "fake_analyzer.py"
        self.behaviour_path = root / "behaviour.json"
        self.calls_path = root / "calls.jsonl"
        self.script.write_text(
            _FAKE_ANALYZER.format(behaviour=str(self.behaviour_path), calls=str(self.calls_path)),
            encoding="utf-8",
        )
        self.configure()

    @property
    def command(self) -> Tuple[str, ...]:
        return (sys.executable, str(self.script))

    def configure(
        self,
        result: Optional[Any] = None,
        exit_code: int = 0,
        stderr: str = "",
        sleep: float = 0,
        raw_output: Optional[str] = None,
        write_output: bool = True,
    ) -> "FakeAnalyzer":
        if raw_output is None and write_output:
            raw_output = json.dumps(sample_raw_chart() if result is None else result)
        if not write_output:
            raw_output = None
        self.behaviour_path.write_text(
            json.dumps({"output": raw_output, "exit_code": exit_code, "stderr": stderr, "sleep": sleep}),
            encoding="utf-8",
        )
        return self

    @property
    def calls(self) -> List[Dict[str, Any]]:
        if not self.calls_path.exists():
            return []
        lines = self.calls_path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]


@pytest.fixture()
def fake_analyzer(tmp_path: Path) -> FakeAnalyzer:
    root = tmp_path / "analyzer"
    root.mkdir()
    return FakeAnalyzer(root)


@pytest.fixture()
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture()
def settings(fake_analyzer: FakeAnalyzer, work_dir: Path) -> Settings:
    return Settings(analyzer_command=fake_analyzer.command, work_dir=work_dir, analyzer_timeout=30)


@pytest.fixture()
def make_settings(fake_analyzer: FakeAnalyzer, work_dir: Path) -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "analyzer_command": fake_analyzer.command,
            "work_dir": work_dir,
            "analyzer_timeout": 30,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


# ---------------------------------------------------------------------------
# FastAPI test client fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def api_client(settings: Settings):
    """``TestClient`` with settings pointed at the fake analyzer and ``tmp_path``."""
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def leftover_files(directory: Path) -> List[str]:
    if not directory.exists():
        return []
    return sorted(p.name for p in directory.iterdir())
