from __future__ import annotations

import os
import sys
from pathlib import Path
import subprocess
import pytest


@pytest.fixture(scope="session")
def repo_root() -> Path:
    # tests/workflow/ -> tests -> repo_root
    return Path(__file__).resolve().parents[2]


@pytest.fixture(scope="session")
def venv_python(repo_root: Path) -> str:
    # Prefer Windows path; fall back to POSIX for portability
    win_path = repo_root / ".venv" / "Scripts" / "python.exe"
    posix_path = repo_root / ".venv" / "bin" / "python"
    if win_path.exists():
        return str(win_path)
    if posix_path.exists():
        return str(posix_path)
    # As a last resort, use sys.executable (developer's interpreter)
    return sys.executable


@pytest.fixture(scope="session")
def tmp_dir(repo_root: Path) -> Path:
    d = repo_root / ".pytest-tmp"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def tmp_db_url(tmp_dir: Path) -> str:
    db_file = tmp_dir / "locations_e2e.db"
    # Fresh database per test function
    if db_file.exists():
        db_file.unlink()
    # Relative to the repo root; db.session anchors it there for every process
    rel = Path(".pytest-tmp") / db_file.name
    return f"sqlite:///./{rel.as_posix()}"


def run_cli(args: list[str], cwd: Path, env: dict | None = None) -> subprocess.CompletedProcess:
    # Execute a command without invoking a shell to avoid quoting issues
    merged_env = dict(os.environ)
    # Keep an outer LOCATIONS_DB_URL/LOCATIONS_CONFIG from leaking into the run
    merged_env.pop("LOCATIONS_DB_URL", None)
    merged_env.pop("LOCATIONS_CONFIG", None)
    py_path = merged_env.get("PYTHONPATH", "")
    sep = ";" if os.name == "nt" else ":"
    if str(cwd) not in (py_path.split(sep) if py_path else []):
        merged_env["PYTHONPATH"] = (py_path + (sep if py_path else "") + str(cwd))
    if env:
        merged_env.update(env)
    return subprocess.run(args, cwd=str(cwd), capture_output=True, text=True, env=merged_env)


@pytest.fixture
def cli(repo_root: Path):
    def _runner(argv: list[str], env: dict | None = None):
        return run_cli(argv, repo_root, env=env)
    return _runner


@pytest.fixture(scope="session")
def reports_dir(repo_root: Path) -> Path:
    r = repo_root / "reports" / "test_artifacts"
    r.mkdir(parents=True, exist_ok=True)
    return r
