from pathlib import Path

from adornpy.repo.scanner import scan_python_files


def test_scan_python_files_finds_src_files():
    repo_root = Path(__file__).resolve().parents[1]
    files = scan_python_files(repo_root, max_files=5000)

    target = (repo_root / "src" / "adornpy" / "cli.py").resolve()
    assert any(Path(p).resolve() == target for p in files)


def test_scan_prunes_envs_and_excluded_dirs(tmp_path: Path):
    for rel in ["app/a.py", ".venv/lib/x.py", "pkg.egg-info/y.py", "out/validators.py", "app/notes.txt"]:
        p = tmp_path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text("", encoding="utf-8")

    files = scan_python_files(tmp_path, exclude=[tmp_path / "out"])
    assert files == [(tmp_path / "app" / "a.py").resolve()]


def test_scan_is_sorted_and_capped(tmp_path: Path):
    for name in ["c.py", "a.py", "b.py"]:
        (tmp_path / name).write_text("", encoding="utf-8")

    files = scan_python_files(tmp_path)
    assert [p.name for p in files] == ["a.py", "b.py", "c.py"]
    assert len(scan_python_files(tmp_path, max_files=2)) == 2
