"""
Tests for the two migration modes.

SQLite stands in for PostgreSQL: the recreate mode is driven from the model
metadata and runs unchanged, while apply-mode tests use small SQLite-flavoured
scripts written to ``tmp_path``.
"""

import pytest
from sqlalchemy import BigInteger, Date, Numeric, String, inspect, select

from accurate_sync.db import Database
from accurate_sync.errors import MigrationError
from accurate_sync.migrations import (
    DEFAULT_SQL_FILE,
    apply_sql_file,
    describe_schema,
    recreate_schema,
    run_migration,
    split_sql_statements,
)
from accurate_sync.models import purchase_invoices

HEADER_COLUMNS = {
    "id", "invoice_id", "invoice_number", "branch_id", "branch_name",
    "trans_date", "invoice_date", "due_date", "vendor_id", "vendor_name",
    "bill_number", "subtotal", "tax_amount", "total_amount", "prime_owing",
    "status_name", "ap_account_id", "ap_account_no", "created_by", "opt_lock",
    "raw_data", "created_at", "updated_at",
}
ITEM_COLUMNS = {
    "id", "invoice_id", "item_id", "item_no", "item_name", "item_category",
    "quantity", "unit_name", "unit_price", "discount", "amount",
    "warehouse_id", "warehouse_name", "gl_inventory_id", "gl_cogs_id",
    "created_at", "updated_at",
}


def test_recreate_creates_tables_and_indexes(sqlite_url):
    with Database(sqlite_url) as db:
        steps = recreate_schema(db)
        schema = describe_schema(db)

    assert steps[:2] == ["drop table purchase_invoice_items", "drop table purchase_invoices"]
    assert set(schema["purchase_invoices"]["columns"]) == HEADER_COLUMNS
    assert set(schema["purchase_invoice_items"]["columns"]) == ITEM_COLUMNS
    assert {"idx_purchase_invoices_branch_date", "idx_purchase_invoices_vendor"} <= set(
        schema["purchase_invoices"]["indexes"]
    )
    assert "idx_purchase_invoice_items_invoice" in schema["purchase_invoice_items"]["indexes"]


def test_recreate_index_columns(database):
    insp = inspect(database.engine)
    by_name = {ix["name"]: ix["column_names"] for ix in insp.get_indexes("purchase_invoices")}
    assert by_name["idx_purchase_invoices_branch_date"] == ["branch_id", "trans_date"]
    assert by_name["idx_purchase_invoices_vendor"] == ["vendor_id"]
    fks = insp.get_foreign_keys("purchase_invoice_items")
    assert fks[0]["referred_table"] == "purchase_invoices"
    assert fks[0]["referred_columns"] == ["invoice_id"]
    assert fks[0]["options"].get("ondelete") == "CASCADE"


def test_recreate_column_types(database):
    insp = inspect(database.engine)
    header = {col["name"]: col for col in insp.get_columns("purchase_invoices")}
    items = {col["name"]: col for col in insp.get_columns("purchase_invoice_items")}

    assert isinstance(header["invoice_id"]["type"], BigInteger)
    assert isinstance(items["invoice_id"]["type"], BigInteger)
    for name in ("subtotal", "tax_amount", "total_amount", "prime_owing"):
        assert isinstance(header[name]["type"], Numeric)
        assert (header[name]["type"].precision, header[name]["type"].scale) == (15, 2)
    for name in ("unit_price", "discount", "amount"):
        assert (items[name]["type"].precision, items[name]["type"].scale) == (15, 2)
    assert isinstance(items["quantity"]["type"], Numeric)
    assert (items["quantity"]["type"].precision, items["quantity"]["type"].scale) == (15, 4)
    for name in ("trans_date", "invoice_date", "due_date"):
        assert isinstance(header[name]["type"], Date)
    assert isinstance(header["invoice_number"]["type"], String)
    assert header["invoice_number"]["type"].length == 50

    for name in ("invoice_id", "invoice_number", "branch_id"):
        assert header[name]["nullable"] is False
    assert items["invoice_id"]["nullable"] is False
    assert header["vendor_id"]["nullable"] is True


def test_recreate_is_repeatable_and_drops_data(database):
    with database.begin() as conn:
        conn.execute(purchase_invoices.insert().values(invoice_id=1, invoice_number="A", branch_id="BR01"))

    recreate_schema(database)

    with database.connect() as conn:
        assert conn.execute(select(purchase_invoices.c.id)).all() == []


def test_split_sql_statements():
    sql = """
    -- leading comment; with a semicolon
    CREATE TABLE a (id INTEGER); -- trailing comment
    INSERT INTO a VALUES (1);
    INSERT INTO t VALUES ('semi;colon');
    DO $$ BEGIN PERFORM 1; END $$;
    SELECT 1
    """
    statements = split_sql_statements(sql)
    assert statements == [
        "CREATE TABLE a (id INTEGER)",
        "INSERT INTO a VALUES (1)",
        "INSERT INTO t VALUES ('semi;colon')",
        "DO $$ BEGIN PERFORM 1; END $$",
        "SELECT 1",
    ]


def test_split_keeps_block_comments_and_tagged_dollar_bodies_intact():
    sql = """
    /* purchase schema; keep in step with models.py */
    CREATE TABLE t (id INTEGER);
    CREATE OR REPLACE FUNCTION one() RETURNS integer AS $body$
    BEGIN
        RETURN 1;
    END
    $body$ LANGUAGE plpgsql;
    """
    statements = split_sql_statements(sql)
    assert len(statements) == 2
    assert statements[0] == "CREATE TABLE t (id INTEGER)"
    assert statements[1].startswith("CREATE OR REPLACE FUNCTION one()")
    assert "RETURN 1;" in statements[1]
    assert statements[1].endswith("LANGUAGE plpgsql")


def test_apply_file_with_block_comment(tmp_path, sqlite_url):
    script = tmp_path / "commented.sql"
    script.write_text(
        "/* vendors; created once */\n"
        "CREATE TABLE IF NOT EXISTS vendors (id INTEGER PRIMARY KEY, name TEXT);\n"
        "/* index; also idempotent */\n"
        "CREATE INDEX IF NOT EXISTS idx_vendors_name ON vendors(name);\n"
    )
    with Database(sqlite_url) as db:
        assert len(apply_sql_file(db, script)) == 2
        tables = inspect(db.engine).get_table_names()
    assert "vendors" in tables


def test_bundled_sql_file_is_idempotent_postgres_ddl():
    statements = split_sql_statements(DEFAULT_SQL_FILE.read_text())
    assert statements
    for statement in statements:
        assert "IF NOT EXISTS" in statement.upper()
    joined = "\n".join(statements)
    assert "REFERENCES purchase_invoices(invoice_id) ON DELETE CASCADE" in joined
    assert "idx_purchase_invoices_branch_date" in joined


def test_apply_is_idempotent(tmp_path, sqlite_url):
    script = tmp_path / "schema.sql"
    script.write_text(
        "CREATE TABLE IF NOT EXISTS vendors (id INTEGER PRIMARY KEY, name TEXT);\n"
        "CREATE INDEX IF NOT EXISTS idx_vendors_name ON vendors(name);\n"
    )
    with Database(sqlite_url) as db:
        assert len(apply_sql_file(db, script)) == 2
        with db.begin() as conn:
            conn.exec_driver_sql("INSERT INTO vendors (name) VALUES ('Acme')")
        apply_sql_file(db, script)
        with db.connect() as conn:
            assert conn.exec_driver_sql("SELECT name FROM vendors").scalars().all() == ["Acme"]


def test_apply_aborts_on_first_failure(tmp_path, sqlite_url):
    script = tmp_path / "broken.sql"
    script.write_text(
        "CREATE TABLE IF NOT EXISTS first_table (id INTEGER);\n"
        "INSERT INTO missing_table VALUES (1);\n"
        "CREATE TABLE IF NOT EXISTS never_created (id INTEGER);\n"
    )
    with Database(sqlite_url) as db:
        with pytest.raises(MigrationError) as excinfo:
            apply_sql_file(db, script)
        tables = inspect(db.engine).get_table_names()

    err = excinfo.value
    assert "statement 2/3" in err.context
    assert "missing_table" in err.context
    assert "missing_table" in str(err.original)
    assert "never_created" not in tables


def test_apply_missing_file(tmp_path, sqlite_url):
    with Database(sqlite_url) as db:
        with pytest.raises(MigrationError, match="read"):
            apply_sql_file(db, tmp_path / "nope.sql")


def test_run_migration_closes_database_on_success(sqlite_url):
    db = Database(sqlite_url)
    summary = run_migration(db, "recreate")
    assert db.closed
    assert summary["mode"] == "recreate"
    assert set(summary["schema"]) == {"purchase_invoices", "purchase_invoice_items"}


def test_run_migration_closes_database_on_failure(tmp_path, sqlite_url):
    script = tmp_path / "broken.sql"
    script.write_text("THIS IS NOT SQL;")
    db = Database(sqlite_url)
    with pytest.raises(MigrationError):
        run_migration(db, "apply", script)
    assert db.closed


def test_run_migration_rejects_unknown_mode(sqlite_url):
    with pytest.raises(ValueError):
        run_migration(sqlite_url, "truncate")
