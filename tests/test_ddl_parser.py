"""Tests for DDL parsing into table metadata."""
from schemadx.core.analyze import diagnose_table
from schemadx.models.finding import FailurePattern, RiskTier
from schemadx.models.metadata import ConstraintType
from schemadx.sql.ddl_parser import parse_ddl_to_metadata

CART_DDL = """
CREATE TABLE cart_item (
    id INTEGER PRIMARY KEY,
    cart_id INTEGER NOT NULL,
    product_id INTEGER,
    quantity INTEGER DEFAULT 1,
    CONSTRAINT fk_cart FOREIGN KEY (cart_id) REFERENCES cart(id) ON DELETE CASCADE
);
"""


def test_parse_simple_table():
    """Test function."""
    tables = parse_ddl_to_metadata(
        "CREATE TABLE users (id INTEGER, email TEXT NOT NULL);",
        owner="app", current_user="app"
    )
    assert len(tables) == 1
    table = tables[0]
    assert table.schema_name == "public"
    assert table.table_name == "users"
    assert table.owner == "app"
    assert [c.name for c in table.columns] == ["id", "email"]
    assert [c.ordinal_position for c in table.columns] == [1, 2]
    assert table.columns[0].nullable is True
    assert table.columns[1].nullable is False
    assert table.columns[1].data_type.upper() == "TEXT"


def test_schema_qualified_table():
    """Test function."""
    tables = parse_ddl_to_metadata("CREATE TABLE shop.orders (id INTEGER);")
    assert tables[0].schema_name == "shop"
    assert tables[0].qualified_name == "shop.orders"


def test_inline_primary_key_and_index():
    """Test function."""
    table = parse_ddl_to_metadata(CART_DDL)[0]
    primary = table.constraints_of(ConstraintType.PRIMARY_KEY)

    assert len(primary) == 1
    assert primary[0].name == "cart_item_pkey"
    assert primary[0].columns == ["id"]
    assert table.columns[0].nullable is False
    assert [i.name for i in table.indexes] == ["cart_item_pkey"]
    assert table.indexes[0].primary is True
    assert table.indexes[0].unique is True


def test_named_foreign_key():
    """Test function."""
    table = parse_ddl_to_metadata(CART_DDL)[0]
    fks = table.foreign_keys
    assert len(fks) == 1
    assert fks[0].name == "fk_cart"
    assert fks[0].columns == ["cart_id"]
    assert "on delete cascade" in fks[0].definition.lower()


def test_default_value():
    """Test function."""
    table = parse_ddl_to_metadata(CART_DDL)[0]
    quantity = next(c for c in table.columns if c.name == "quantity")
    assert quantity.column_default == "1"


def test_not_null_recorded_as_generic_constraint():
    """Test function."""
    table = parse_ddl_to_metadata(CART_DDL)[0]
    other = table.constraints_of(ConstraintType.OTHER)
    assert [c.name for c in other] == ["cart_item_cart_id_not_null"]
    assert other[0].raw_type == "NOT NULL"


def test_unnamed_table_constraints_get_default_names():
    """Test function."""
    ddl = """
    CREATE TABLE line (
        a INTEGER,
        b INTEGER,
        order_id INTEGER,
        PRIMARY KEY (a, b),
        FOREIGN KEY (order_id) REFERENCES orders(id),
        UNIQUE (a, order_id)
    );
    """
    table = parse_ddl_to_metadata(ddl)[0]
    names = {c.type: c.name for c in table.constraints}
    assert names[ConstraintType.PRIMARY_KEY] == "line_pkey"
    assert names[ConstraintType.FOREIGN_KEY] == "line_order_id_fkey"
    assert names[ConstraintType.UNIQUE] == "line_a_order_id_key"
    assert table.indexes[0].columns == ["a", "b"]


def test_inline_references():
    """Test function."""
    table = parse_ddl_to_metadata(
        "CREATE TABLE category (id INTEGER PRIMARY KEY, "
        "parent_id INTEGER REFERENCES category(id) ON DELETE CASCADE);"
    )[0]
    fk = table.foreign_keys[0]
    assert fk.name == "category_parent_id_fkey"
    assert fk.definition.startswith("FOREIGN KEY (parent_id) REFERENCES category")


def test_create_index_attaches_to_table():
    """Test function."""
    ddl = CART_DDL + """
    CREATE INDEX idx_cart ON cart_item (cart_id);
    CREATE UNIQUE INDEX idx_cart_product ON cart_item (cart_id, product_id);
    CREATE INDEX idx_unknown ON missing_table (x);
    """
    table = parse_ddl_to_metadata(ddl)[0]
    by_name = {i.name: i for i in table.indexes}

    assert set(by_name) == {"cart_item_pkey", "idx_cart", "idx_cart_product"}
    assert by_name["idx_cart"].columns == ["cart_id"]
    assert by_name["idx_cart"].unique is False
    assert by_name["idx_cart_product"].unique is True
    assert by_name["idx_cart"].access_method == "btree"


def test_comments():
    """Test function."""
    ddl = CART_DDL + """
    COMMENT ON TABLE cart_item IS 'Items in a cart';
    COMMENT ON COLUMN cart_item.quantity IS 'Number of units';
    """
    table = parse_ddl_to_metadata(ddl)[0]
    assert table.comment == "Items in a cart"
    quantity = next(c for c in table.columns if c.name == "quantity")
    assert quantity.comment == "Number of units"


def test_multiple_tables_in_order():
    """Test function."""
    ddl = """
    CREATE TABLE cart (id INTEGER PRIMARY KEY);
    CREATE TABLE cart_item (id INTEGER PRIMARY KEY, cart_id INTEGER);
    """
    assert [t.table_name for t in parse_ddl_to_metadata(ddl)] == ["cart", "cart_item"]


def test_unsupported_statements_are_skipped():
    """Test function."""
    ddl = "SELECT 1; CREATE TABLE t (id INTEGER);"
    assert [t.table_name for t in parse_ddl_to_metadata(ddl)] == ["t"]


def test_invalid_sql_returns_empty_list():
    """Test function."""
    assert parse_ddl_to_metadata("CREATE TABLE (((") == []


def test_parsed_ddl_feeds_diagnosis():
    """Test function."""
    ddl = """
    CREATE TABLE category (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        parent_id INTEGER,
        CONSTRAINT fk_parent FOREIGN KEY (parent_id) REFERENCES category(id) ON DELETE CASCADE
    );
    """
    diagnosis = diagnose_table(parse_ddl_to_metadata(ddl)[0])
    assert diagnosis.foreign_key_risks[0].tier == RiskTier.CRITICAL
    assert [p.pattern for p in diagnosis.patterns] == [
        FailurePattern.RECURSIVE_CASCADE,
        FailurePattern.NOT_NULL_WITHOUT_DEFAULT,
    ]
