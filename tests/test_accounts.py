"""Tests for the account registry and the account service."""

import json

import pytest

from multicodex.core.errors import AccountExists, AccountNotFound, InvalidAccountName, NoAccountsConfigured
from multicodex.core.models import OutcomeKind, UsageSnapshot
from multicodex.infrastructure.factory import ServiceFactory


@pytest.fixture
def factory(paths):
    with ServiceFactory(paths) as factory:
        yield factory


@pytest.fixture
def service(factory):
    return factory.get_account_service()


def read_config(paths):
    return json.loads(paths.config_path.read_text())


def test_first_added_account_becomes_current(service, paths):
    service.add_account("work")
    service.add_account("personal")

    config = read_config(paths)
    assert config == {"version": 2, "currentAccount": "work", "accounts": {"work": {}, "personal": {}}}
    assert paths.account_dir("work").is_dir()
    assert json.loads(paths.account_meta_path("work").read_text())["createdAt"].endswith("Z")


def test_add_rejects_duplicates_and_invalid_names(service):
    service.add_account(" work ")

    with pytest.raises(AccountExists):
        service.add_account("work")
    with pytest.raises(InvalidAccountName):
        service.add_account("../evil")
    with pytest.raises(InvalidAccountName):
        service.add_account("")


def test_list_accounts_sorted_with_auth_flags(service, paths):
    service.add_account("zeta")
    service.add_account("alpha")
    paths.account_auth_path("alpha").write_text("{}")

    entries, current = service.list_accounts()

    assert [entry.name for entry in entries] == ["alpha", "zeta"]
    assert current == "zeta"
    assert entries[0].has_auth is True
    assert entries[1].has_auth is False
    assert entries[1].is_current is True


def test_remove_current_moves_to_first_remaining(service, paths):
    for name in ("work", "beta", "alpha"):
        service.add_account(name)

    service.remove_account("work")

    assert read_config(paths)["currentAccount"] == "alpha"
    assert paths.account_dir("work").is_dir()


def test_remove_last_account_clears_current_and_deletes_data(service, paths):
    service.add_account("work")

    service.remove_account("work", delete_data=True)

    assert read_config(paths) == {"version": 2, "accounts": {}}
    assert not paths.account_dir("work").exists()
    with pytest.raises(AccountNotFound):
        service.remove_account("work")


def test_remove_forgets_cached_limits(service, factory):
    service.add_account("work")
    cache = factory.get_limits_cache()
    cache.set("work", UsageSnapshot(), OutcomeKind.LIVE_API)

    service.remove_account("work")

    assert cache.get("work", 300) is None


def test_rename_moves_directory_current_pointer_and_cache(service, factory, paths):
    service.add_account("old")
    paths.account_auth_path("old").write_text('{"tokens": {}}')
    factory.get_limits_cache().set("old", UsageSnapshot(), OutcomeKind.LIVE_RPC)

    service.rename_account("old", "new")

    config = read_config(paths)
    assert config["currentAccount"] == "new"
    assert list(config["accounts"]) == ["new"]
    assert paths.account_auth_path("new").read_text() == '{"tokens": {}}'
    assert not paths.account_dir("old").exists()
    assert factory.get_limits_cache().get("new", 300).provider == "rpc"


def test_rename_refuses_existing_target(service):
    service.add_account("a")
    service.add_account("b")

    with pytest.raises(AccountExists):
        service.rename_account("a", "b")
    with pytest.raises(AccountNotFound):
        service.rename_account("missing", "c")


def test_use_installs_auth_and_sets_current(service, paths):
    service.add_account("work")
    service.add_account("personal")
    paths.account_auth_path("personal").write_bytes(b"personal-auth")

    service.use_account("personal")

    assert paths.active_auth_path.read_bytes() == b"personal-auth"
    assert service.current_account() == "personal"
    assert service.meta_store.read("personal").last_used_at is not None


def test_use_unknown_account_changes_nothing(service, paths):
    service.add_account("work")

    with pytest.raises(AccountNotFound):
        service.use_account("ghost")

    assert service.current_account() == "work"
    assert not paths.active_auth_path.exists()


def test_import_captures_active_login_into_current(service, paths):
    service.add_account("work")
    paths.active_auth_path.parent.mkdir(parents=True)
    paths.active_auth_path.write_bytes(b"fresh-login")

    assert service.import_auth() == "work"
    assert paths.account_auth_path("work").read_bytes() == b"fresh-login"


def test_resolution_order(factory, service):
    store = factory.get_store()
    with pytest.raises(NoAccountsConfigured):
        store.resolve_account_name()

    service.add_account("work")
    service.add_account("personal")

    assert store.resolve_account_name("personal") == "personal"
    assert store.resolve_account_name() == "work"

    with store.update() as config:
        config.current_account = "deleted"
    assert store.resolve_account_name() == "work"


def test_version_one_config_is_migrated(factory, paths):
    paths.home.mkdir(parents=True)
    paths.config_path.write_text(
        json.dumps(
            {
                "version": 1,
                "currentAccount": "work",
                "accounts": {"work": {"codexHome": "/tmp/work"}, "broken": {"codexHome": ""}},
            }
        )
    )

    config = factory.get_store().load()

    assert config.accounts == {"work": {}}
    assert config.current_account == "work"


def test_corrupt_config_reads_as_empty(factory, paths):
    paths.home.mkdir(parents=True)
    paths.config_path.write_text("{oops")

    config = factory.get_store().load()

    assert config.accounts == {}
    assert config.current_account is None


def test_login_status_is_recorded(service):
    service.add_account("work")

    service.record_login_status("work", "Logged in using ChatGPT")

    meta = service.meta_store.read("work")
    assert meta.last_login_status == "Logged in using ChatGPT"
    assert meta.last_login_checked_at == meta.last_used_at
