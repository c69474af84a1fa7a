import json
import os
from pathlib import Path
import textwrap

from adornpy.cache.staleness import (
    CACHE_FILE,
    MANIFEST_FILE,
    collect_config_chain,
    find_lockfile,
    is_stale,
    write_cache,
)


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def bump_mtime(p: Path, seconds: int = 10) -> None:
    st = p.stat()
    os.utime(p, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))


def _project(tmp_path: Path):
    root = tmp_path / "proj"
    write(
        root / "pyproject.toml",
        """
        [project]
        name = "demo"

        [tool.adornpy]
        extends = "config/base.toml"
        """,
    )
    write(root / "config" / "base.toml", "[tool.adornpy]\ntitle = 'Demo'\n")
    write(root / "uv.lock", "version = 1\n")
    src = root / "app" / "users.py"
    write(src, "x = 1\n")
    out = root / ".adorn"
    out.mkdir()
    (out / MANIFEST_FILE).write_text("{}", encoding="utf-8")
    return root, src, out


def test_config_chain_follows_extends(tmp_path: Path):
    root, _, _ = _project(tmp_path)
    chain = collect_config_chain(root / "pyproject.toml")
    assert chain == [(root / "pyproject.toml").resolve(), (root / "config" / "base.toml").resolve()]


def test_config_chain_cuts_cycles(tmp_path: Path):
    a = tmp_path / "a.toml"
    b = tmp_path / "b.toml"
    write(a, "[tool.adornpy]\nextends = 'b.toml'\n")
    write(b, "[tool.adornpy]\nextends = 'a.toml'\n")
    assert collect_config_chain(a) == [a.resolve(), b.resolve()]


def test_lockfile_is_found_upwards(tmp_path: Path):
    root, src, _ = _project(tmp_path)
    lock = find_lockfile(src.parent)
    assert lock is not None
    assert Path(lock.path) == (root / "uv.lock").resolve()


def test_missing_manifest_and_cache(tmp_path: Path):
    out = tmp_path / "out"
    assert is_stale(out).reason == "missing-manifest"
    out.mkdir()
    (out / MANIFEST_FILE).write_text("{}", encoding="utf-8")
    assert is_stale(out).reason == "missing-cache"
    (out / CACHE_FILE).write_text("not json", encoding="utf-8")
    assert is_stale(out).reason == "missing-cache"


def test_up_to_date_then_input_changes(tmp_path: Path):
    root, src, out = _project(tmp_path)
    config = root / "pyproject.toml"
    write_cache(out, [src], config_path=config, root=root)

    result = is_stale(out, config)
    assert result.stale is False
    assert result.reason == "up-to-date"

    bump_mtime(src)
    result = is_stale(out, config)
    assert (result.stale, result.reason) == (True, "input-updated")
    assert result.detail == str(src.resolve())


def test_generator_version_and_config_path(tmp_path: Path):
    root, src, out = _project(tmp_path)
    config = root / "pyproject.toml"
    write_cache(out, [src], config_path=config, root=root, generator_version="0.0.1")

    assert is_stale(out, config, generator_version="0.0.2").reason == "generator-version-changed"
    assert is_stale(out, root / "config" / "base.toml", generator_version="0.0.1").reason == "config-changed"


def test_extended_config_and_lockfile_changes(tmp_path: Path):
    root, src, out = _project(tmp_path)
    config = root / "pyproject.toml"
    write_cache(out, [src], config_path=config, root=root)

    bump_mtime(root / "config" / "base.toml")
    assert is_stale(out, config).reason == "config-updated"

    write_cache(out, [src], config_path=config, root=root)
    bump_mtime(root / "uv.lock")
    assert is_stale(out, config).reason == "lockfile-updated"

    write_cache(out, [src], config_path=config, root=root)
    src.unlink()
    assert is_stale(out, config).reason == "input-missing"


def test_cache_file_shape(tmp_path: Path):
    root, src, out = _project(tmp_path)
    config = root / "pyproject.toml"
    write_cache(out, [src], config_path=config, root=root)

    data = json.loads((out / CACHE_FILE).read_text(encoding="utf-8"))
    assert data["cacheVersion"] == 1
    assert data["generator"]["name"] == "adornpy"
    assert data["project"]["configPath"] == str(config.resolve())
    assert set(data["project"]["configFiles"]) == {
        str(config.resolve()),
        str((root / "config" / "base.toml").resolve()),
    }
    assert data["project"]["lockfile"]["path"] == str((root / "uv.lock").resolve())
    assert "mtimeMs" in data["project"]["lockfile"]
    assert list(data["inputs"]) == [str(src.resolve())]


def test_settings_fingerprint_changes(tmp_path: Path):
    root, src, out = _project(tmp_path)
    config = root / "pyproject.toml"
    settings = {"packageName": "adornpy", "validationMode": "precompiled", "entityTables": {}}
    write_cache(out, [src], config_path=config, root=root, settings=settings)

    assert is_stale(out, config, settings=dict(settings)).reason == "up-to-date"
    # callers that pass no settings skip the comparison
    assert is_stale(out, config).reason == "up-to-date"

    result = is_stale(out, config, settings={**settings, "packageName": "myframework"})
    assert (result.stale, result.reason, result.detail) == (True, "settings-changed", "packageName")

    result = is_stale(out, config, settings={**settings, "entityTables": {"UserRow": "users"}})
    assert result.reason == "settings-changed"
    assert result.detail == "entityTables"

    data = json.loads((out / CACHE_FILE).read_text(encoding="utf-8"))
    assert data["settings"] == settings
