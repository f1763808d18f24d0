"""
Tests for the statement executor: defaults, constraints, triggers,
row-level security, cascades and atomicity
"""

import pytest
from decimal import Decimal

from luckypay.database import Database
from luckypay.errors import (
    DatabaseError, UndefinedTableError, UniqueViolation, ForeignKeyViolation,
    NotNullViolation, RowLevelSecurityError, TriggerError
)
from luckypay.schema import (
    AUTH_USERS, Column, ColumnType, ForeignKey, TableSchema, gen_random_uuid, now
)
from luckypay.security import Command, identity_context, service_role, owner_is_caller
from luckypay.storage import InMemoryStorage, SQLiteStorage
from luckypay.triggers import TriggerTiming, TriggerEvent


def notes_table(cascade: bool = True) -> TableSchema:
    return TableSchema("notes", [
        Column("id", ColumnType.UUID, default=gen_random_uuid, primary_key=True),
        Column("user_id", ColumnType.UUID, references=ForeignKey(AUTH_USERS, on_delete_cascade=cascade)),
        Column("title", ColumnType.TEXT, nullable=False),
        Column("slug", ColumnType.TEXT, unique=True),
        Column("amount", ColumnType.NUMERIC),
        Column("created_at", ColumnType.TIMESTAMPTZ, default=now),
    ])


def add_identity(database: Database, identity_id: str) -> None:
    with service_role():
        database.insert(AUTH_USERS, {
            "id": identity_id, "phone": identity_id,
            "password_hash": "x", "password_salt": "y"
        })


@pytest.fixture(params=["memory", "sqlite"])
def database(request):
    storage = InMemoryStorage() if request.param == "memory" else SQLiteStorage(":memory:")
    database = Database(storage)
    database.create_table(notes_table())
    add_identity(database, "u1")
    add_identity(database, "u2")
    yield database
    storage.close()


@pytest.fixture
def secured(database):
    """notes with owner-only policies for every command"""
    database.enable_row_level_security("notes")
    owner = owner_is_caller("user_id")
    database.create_policy("select own", "notes", Command.SELECT, using=owner)
    database.create_policy("insert own", "notes", Command.INSERT, with_check=owner)
    database.create_policy("update own", "notes", Command.UPDATE, using=owner)
    database.create_policy("delete own", "notes", Command.DELETE, using=owner)
    return database


class TestCatalog:
    """Test table, policy and trigger registration"""
    
    def test_auth_users_bootstrapped(self, database):
        assert database.has_table(AUTH_USERS)
    
    def test_duplicate_table(self, database):
        with pytest.raises(DatabaseError, match="already exists"):
            database.create_table(notes_table())
        assert database.create_table(notes_table(), if_not_exists=True).name == "notes"
    
    def test_unknown_table(self, database):
        with pytest.raises(UndefinedTableError):
            database.select("missing")
        with pytest.raises(UndefinedTableError):
            database.create_policy("p", "missing", Command.SELECT)
    
    def test_drop_table_removes_rows(self, database):
        database.insert("notes", {"user_id": "u1", "title": "a"})
        database.drop_table("notes")
        assert not database.has_table("notes")
        assert database.storage.load_all("notes") == []


class TestInsert:
    
    def test_defaults_and_coercion(self, database):
        row = database.insert("notes", {"user_id": "u1", "title": "hello", "amount": 5})
        assert row["id"]
        assert row["amount"] == "5.00"
        assert row["created_at"]
        assert database.storage.find("notes", {"id": row["id"]}) == [row]
    
    def test_not_null(self, database):
        with pytest.raises(NotNullViolation):
            database.insert("notes", {"user_id": "u1"})
    
    def test_unique(self, database):
        database.insert("notes", {"user_id": "u1", "title": "a", "slug": "same"})
        with pytest.raises(UniqueViolation, match="notes_slug_key"):
            database.insert("notes", {"user_id": "u1", "title": "b", "slug": "same"})
    
    def test_duplicate_primary_key(self, database):
        row = database.insert("notes", {"user_id": "u1", "title": "a"})
        with pytest.raises(UniqueViolation, match="notes_pkey"):
            database.insert("notes", {"id": row["id"], "user_id": "u1", "title": "b"})
    
    def test_foreign_key(self, database):
        with pytest.raises(ForeignKeyViolation, match="notes_user_id_fkey"):
            database.insert("notes", {"user_id": "nobody", "title": "a"})
    
    def test_null_foreign_key_allowed(self, database):
        row = database.insert("notes", {"title": "orphan"})
        assert row["user_id"] is None


class TestRowLevelSecurity:
    """Test policy enforcement through statements"""
    
    def test_insert_own_row(self, secured):
        with identity_context("u1"):
            row = secured.insert("notes", {"user_id": "u1", "title": "mine"})
        assert row["user_id"] == "u1"
    
    def test_insert_foreign_row_rejected(self, secured):
        with identity_context("u1"):
            with pytest.raises(RowLevelSecurityError, match='table "notes"'):
                secured.insert("notes", {"user_id": "u2", "title": "theirs"})
        assert secured.storage.load_all("notes") == []
    
    def test_anonymous_insert_rejected(self, secured):
        with pytest.raises(RowLevelSecurityError):
            secured.insert("notes", {"user_id": "u1", "title": "x"})
    
    def test_select_filters_silently(self, secured):
        with identity_context("u1"):
            secured.insert("notes", {"user_id": "u1", "title": "mine"})
        with identity_context("u2"):
            secured.insert("notes", {"user_id": "u2", "title": "theirs"})
            rows = secured.select("notes")
            assert [r["title"] for r in rows] == ["theirs"]
            assert secured.select("notes", {"user_id": "u1"}) == []
        assert secured.select("notes") == []
    
    def test_limit_applies_after_filtering(self, secured):
        with identity_context("u2"):
            for i in range(3):
                secured.insert("notes", {"user_id": "u2", "title": f"b{i}"})
        with identity_context("u1"):
            secured.insert("notes", {"user_id": "u1", "title": "a"})
            rows = secured.select("notes", limit=1)
        assert [r["title"] for r in rows] == ["a"]
    
    def test_update_of_other_rows_is_noop(self, secured):
        with identity_context("u1"):
            row = secured.insert("notes", {"user_id": "u1", "title": "mine"})
        with identity_context("u2"):
            assert secured.update("notes", {"id": row["id"]}, {"title": "hijacked"}) == []
        assert secured.storage.find("notes", {"id": row["id"]})[0]["title"] == "mine"
    
    def test_update_cannot_hand_row_to_someone_else(self, secured):
        with identity_context("u1"):
            row = secured.insert("notes", {"user_id": "u1", "title": "mine"})
            with pytest.raises(RowLevelSecurityError):
                secured.update("notes", {"id": row["id"]}, {"user_id": "u2"})
        assert secured.storage.find("notes", {"id": row["id"]})[0]["user_id"] == "u1"
    
    def test_delete_of_other_rows_is_noop(self, secured):
        with identity_context("u1"):
            row = secured.insert("notes", {"user_id": "u1", "title": "mine"})
        with identity_context("u2"):
            assert secured.delete("notes", {"id": row["id"]}) == 0
        with identity_context("u1"):
            assert secured.delete("notes", {"id": row["id"]}) == 1
    
    def test_service_role_sees_everything(self, secured):
        with identity_context("u1"):
            secured.insert("notes", {"user_id": "u1", "title": "a"})
        with service_role():
            assert len(secured.select("notes")) == 1


class TestSelect:
    
    def test_ordering_numeric_values(self, database):
        for amount in ("9", "100", "25"):
            database.insert("notes", {"user_id": "u1", "title": amount, "amount": amount})
        rows = database.select("notes", order_by="amount", descending=True)
        assert [r["title"] for r in rows] == ["100", "25", "9"]
    
    def test_unknown_order_column(self, database):
        with pytest.raises(DatabaseError):
            database.select("notes", order_by="missing")
    
    def test_filters_are_coerced(self, database):
        database.insert("notes", {"user_id": "u1", "title": "a", "amount": 6000})
        assert len(database.select("notes", {"amount": Decimal("6000")})) == 1
    
    def test_select_one(self, database):
        assert database.select_one("notes", {"title": "none"}) is None


class TestTriggers:
    """Test trigger firing order, row rewriting and atomicity"""
    
    def test_before_trigger_rewrites_row(self, database):
        def shout(ctx):
            ctx.new["title"] = ctx.new["title"].upper()
            return ctx.new
        database.create_trigger("shout", "notes", TriggerTiming.BEFORE, [TriggerEvent.INSERT], shout)
        
        row = database.insert("notes", {"user_id": "u1", "title": "quiet"})
        assert row["title"] == "QUIET"
    
    def test_triggers_fire_in_name_order(self, database):
        fired = []
        for name in ("b_second", "a_first", "c_third"):
            database.create_trigger(
                name, "notes", TriggerTiming.AFTER, [TriggerEvent.INSERT],
                lambda ctx, name=name: fired.append(name)
            )
        database.insert("notes", {"user_id": "u1", "title": "x"})
        assert fired == ["a_first", "b_second", "c_third"]
    
    def test_duplicate_trigger_name(self, database):
        database.create_trigger("t", "notes", TriggerTiming.AFTER, [TriggerEvent.INSERT], lambda ctx: None)
        with pytest.raises(ValueError):
            database.create_trigger("t", "notes", TriggerTiming.AFTER, [TriggerEvent.INSERT], lambda ctx: None)
    
    def test_update_trigger_sees_old_and_new(self, database):
        seen = {}
        
        def capture(ctx):
            seen["old"] = ctx.old["title"]
            seen["new"] = ctx.new["title"]
            seen["op"] = ctx.operation
        database.create_trigger("capture", "notes", TriggerTiming.AFTER, [TriggerEvent.UPDATE], capture)
        
        row = database.insert("notes", {"user_id": "u1", "title": "before"})
        database.update("notes", {"id": row["id"]}, {"title": "after"})
        assert seen == {"old": "before", "new": "after", "op": TriggerEvent.UPDATE}
    
    def test_failing_after_trigger_rolls_back_statement(self, database):
        def side_effect_then_fail(ctx):
            ctx.database.insert("notes", {"user_id": "u1", "title": "side effect"})
            raise TriggerError("rejected", ctx.table_name)
        database.create_trigger("z_fail", AUTH_USERS, TriggerTiming.AFTER,
                                [TriggerEvent.INSERT], side_effect_then_fail)
        
        with pytest.raises(TriggerError):
            add_identity(database, "u3")
        
        with service_role():
            assert database.select(AUTH_USERS, {"id": "u3"}) == []
        assert database.select("notes") == []
    
    def test_security_definer_trigger_bypasses_rls(self, secured):
        def copy_for_u2(ctx):
            if ctx.new["user_id"] == "u1":
                ctx.database.insert("notes", {"user_id": "u2", "title": "copy"})
        secured.create_trigger("copy", "notes", TriggerTiming.AFTER, [TriggerEvent.INSERT], copy_for_u2)
        
        with identity_context("u1"):
            secured.insert("notes", {"user_id": "u1", "title": "original"})
        with identity_context("u2"):
            assert [r["title"] for r in secured.select("notes")] == ["copy"]
    
    def test_invoker_trigger_respects_rls(self, secured):
        def copy_for_u2(ctx):
            if ctx.new["user_id"] == "u1":
                ctx.database.insert("notes", {"user_id": "u2", "title": "copy"})
        secured.create_trigger("copy", "notes", TriggerTiming.AFTER, [TriggerEvent.INSERT],
                               copy_for_u2, security_definer=False)
        
        with identity_context("u1"):
            with pytest.raises(RowLevelSecurityError):
                secured.insert("notes", {"user_id": "u1", "title": "original"})
        assert secured.storage.load_all("notes") == []


class TestDeleteCascade:
    
    def test_deleting_identity_cascades(self, database):
        database.insert("notes", {"user_id": "u1", "title": "a"})
        database.insert("notes", {"user_id": "u2", "title": "b"})
        
        with service_role():
            assert database.delete(AUTH_USERS, {"id": "u1"}) == 1
        assert [r["title"] for r in database.select("notes")] == ["b"]
    
    def test_restricted_foreign_key_blocks_delete(self):
        database = Database(InMemoryStorage())
        database.create_table(notes_table(cascade=False))
        add_identity(database, "u1")
        database.insert("notes", {"user_id": "u1", "title": "a"})
        
        with service_role():
            with pytest.raises(ForeignKeyViolation):
                database.delete(AUTH_USERS, {"id": "u1"})
            assert database.select(AUTH_USERS, {"id": "u1"})
