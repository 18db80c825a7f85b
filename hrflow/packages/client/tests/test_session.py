"""SessionStore 测试 -- 持久化镜像与旧键迁移"""

from pathlib import Path

from hrflow.client.session import (
    TOKEN_KEY,
    USER_KEY,
    FileSessionStorage,
    MemorySessionStorage,
    SessionStore,
)


class TestSessionStore:
    def test_set_credentials_mirrors_to_storage(self, employee):
        storage = MemorySessionStorage()
        store = SessionStore(storage)
        assert store.set_credentials(employee, "tok")
        assert store.is_authenticated
        assert storage.get(TOKEN_KEY) == "tok"
        assert storage.get(USER_KEY) == employee.model_dump_json()

    def test_empty_token_rejected(self, employee):
        store = SessionStore(MemorySessionStorage())
        assert store.set_credentials(employee, "") is False
        assert not store.is_authenticated

    def test_reload_restores_session(self, employee):
        storage = MemorySessionStorage()
        SessionStore(storage).set_credentials(employee, "tok")
        reloaded = SessionStore(storage)
        assert reloaded.access_token == "tok"
        assert reloaded.user == employee

    def test_legacy_role_token_migrated_once(self):
        storage = MemorySessionStorage({"manager_token": "legacy", "employee_token": "older"})
        store = SessionStore(storage)
        assert store.access_token == "legacy"
        assert storage.get(TOKEN_KEY) == "legacy"
        assert storage.keys() == [TOKEN_KEY]

    def test_current_token_wins_over_legacy(self):
        storage = MemorySessionStorage({TOKEN_KEY: "current", "admin_token": "legacy"})
        assert SessionStore(storage).access_token == "current"
        assert storage.get("admin_token") is None

    def test_unreadable_user_dropped(self):
        storage = MemorySessionStorage({TOKEN_KEY: "tok", USER_KEY: "{not json"})
        store = SessionStore(storage)
        assert store.user is None
        assert not store.is_authenticated
        assert storage.get(USER_KEY) is None

    def test_clear_removes_everything(self, employee):
        storage = MemorySessionStorage()
        session_storage = MemorySessionStorage({"draft": "x"})
        store = SessionStore(storage, session_storage)
        store.set_credentials(employee, "tok")
        storage.set("hr_token", "stale")

        store.clear()
        assert store.access_token is None
        assert store.user is None
        assert storage.keys() == []
        assert session_storage.keys() == []

    def test_update_token_keeps_user(self, employee):
        store = SessionStore(MemorySessionStorage())
        store.set_credentials(employee, "tok")
        store.update_token("tok-2")
        assert store.access_token == "tok-2"
        assert store.user == employee


class TestFileSessionStorage:
    def test_persists_across_instances(self, tmp_path: Path, employee):
        path = tmp_path / "session" / "state.json"
        SessionStore(FileSessionStorage(path)).set_credentials(employee, "tok")
        assert SessionStore(FileSessionStorage(path)).access_token == "tok"

    def test_corrupt_file_treated_as_empty(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text("not json", encoding="utf-8")
        assert FileSessionStorage(path).get(TOKEN_KEY) is None
