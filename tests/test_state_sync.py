"""
Tests for the enable/disable state machine.
"""

import asyncio

import httpx
import pytest

from errors import ConfigurationError, InstallFailed, OperationNotAllowed
from forced_dependency import make_forced_entry
from manifest_schema import ModEntry
from mod_installer import ModInstaller
from state_sync import ModState, StateSync
from tests.conftest import zip_bytes

DLL_URL = "https://github.com/ex/foo/releases/download/v1.0/Foo.dll"


@pytest.fixture
def sync(client, temp_dir, error_log):
    return StateSync(ModInstaller(client, temp_dir), error_log)


def plugin(game_dir, name):
    return game_dir / "BepInEx" / "plugins" / name


@pytest.mark.asyncio
async def test_enable_installs(github, sync, game_dir):
    github.add(DLL_URL, b"MZ")
    mod = ModEntry(name="Foo", download_url=DLL_URL)
    sync.track([mod])

    result = await sync.request(mod, True, game_dir)

    assert result.ok
    assert result.state is ModState.ENABLED
    assert mod.enabled is True
    assert sync.state_of(mod) is ModState.ENABLED
    assert plugin(game_dir, "Foo.dll").exists()


@pytest.mark.asyncio
async def test_failed_install_rolls_back(github, sync, game_dir, error_log):
    github.add(DLL_URL, httpx.ConnectError("unreachable"))
    mod = ModEntry(name="Foo", download_url=DLL_URL)
    sync.track([mod])

    result = await sync.request(mod, True, game_dir)

    assert not result.ok
    assert isinstance(result.error, InstallFailed)
    assert result.state is ModState.DISABLED
    assert mod.enabled is False
    assert not plugin(game_dir, "Foo.dll").exists()
    assert result.log_path == str(error_log.log_dir / "errors.log")
    assert "Error installing Foo" in (error_log.log_dir / "errors.log").read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_missing_download_url_fails_loudly(sync, game_dir):
    mod = ModEntry(name="Foo")
    sync.track([mod])

    result = await sync.request(mod, True, game_dir)

    assert isinstance(result.error, InstallFailed)
    assert mod.enabled is False


@pytest.mark.asyncio
@pytest.mark.parametrize("game_dir_value", [None, ""])
async def test_enable_without_game_dir(github, sync, game_dir_value):
    mod = ModEntry(name="Foo", download_url=DLL_URL)
    sync.track([mod])

    result = await sync.request(mod, True, game_dir_value)

    assert isinstance(result.error, ConfigurationError)
    assert result.state is ModState.DISABLED
    assert mod.enabled is False
    assert github.requests == []


@pytest.mark.asyncio
async def test_forced_entry_cannot_be_disabled(github, sync, game_dir):
    runtime = make_forced_entry()
    sync.track([runtime])

    result = await sync.request(runtime, False, game_dir)

    assert isinstance(result.error, OperationNotAllowed)
    assert result.state is ModState.ENABLED
    assert runtime.enabled is True
    assert github.requests == []


@pytest.mark.asyncio
async def test_forced_entry_reinstalls_every_time(github, sync, game_dir):
    runtime = make_forced_entry()
    github.add(runtime.download_url, zip_bytes({"BepInEx/core/BepInEx.dll": b"MZ"}))
    sync.track([runtime])

    first = await sync.request(runtime, True, game_dir)
    second = await sync.request(runtime, True, game_dir)

    assert first.ok and second.ok
    assert github.count(runtime.download_url) == 2
    assert (game_dir / "BepInEx" / "core" / "BepInEx.dll").exists()


@pytest.mark.asyncio
async def test_disable_uninstalls(github, sync, game_dir):
    github.add(DLL_URL, b"MZ")
    mod = ModEntry(name="Foo", download_url=DLL_URL)
    sync.track([mod])
    await sync.request(mod, True, game_dir)

    result = await sync.request(mod, False, game_dir)

    assert result.ok
    assert result.state is ModState.DISABLED
    assert mod.enabled is False
    assert not plugin(game_dir, "Foo.dll").exists()


@pytest.mark.asyncio
async def test_disable_with_nothing_on_disk(sync, game_dir):
    mod = ModEntry(name="Foo", download_url=DLL_URL, enabled=True)
    sync.track([mod])

    result = await sync.request(mod, False, game_dir)

    assert result.ok
    assert mod.enabled is False


@pytest.mark.asyncio
async def test_requests_for_one_mod_run_in_order(github, sync, game_dir):
    github.add(DLL_URL, b"MZ")
    mod = ModEntry(name="Foo", download_url=DLL_URL)
    sync.track([mod])

    enabled, disabled = await asyncio.gather(
        sync.request(mod, True, game_dir),
        sync.request(mod, False, game_dir),
    )

    assert enabled.state is ModState.ENABLED
    assert disabled.state is ModState.DISABLED
    assert mod.enabled is False
    assert not plugin(game_dir, "Foo.dll").exists()


@pytest.mark.asyncio
async def test_different_mods_are_independent(github, sync, game_dir):
    bar_url = "https://github.com/ex/bar/releases/download/v1.0/Bar.dll"
    github.add(DLL_URL, b"MZ")
    github.add(bar_url, 500)
    foo = ModEntry(name="Foo", download_url=DLL_URL)
    bar = ModEntry(name="Bar", download_url=bar_url)
    sync.track([foo, bar])

    foo_result, bar_result = await asyncio.gather(
        sync.request(foo, True, game_dir),
        sync.request(bar, True, game_dir),
    )

    assert foo_result.ok and foo.enabled
    assert not bar_result.ok and not bar.enabled


@pytest.mark.asyncio
async def test_failed_reinstall_keeps_enabled_mod_on_disk(github, sync, game_dir):
    zip_url = "https://github.com/ex/foo/releases/download/v1.0/foo.zip"
    installed = plugin(game_dir, "Foo")
    installed.mkdir(parents=True)
    (installed / "Foo.dll").write_bytes(b"MZ")
    github.add(zip_url, b"not a zip")
    mod = ModEntry(name="Foo", download_url=zip_url, enabled=True)
    sync.track([mod])

    result = await sync.request(mod, True, game_dir)

    assert isinstance(result.error, InstallFailed)
    assert result.state is ModState.ENABLED
    assert mod.enabled is True
    assert (installed / "Foo.dll").exists()
