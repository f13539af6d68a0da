"""DDL synthesizer tests: classification, parameters, output shape, builders."""

import pytest

from qb_sql.conversion.ddl import (
    BoundParameter,
    QueryClass,
    aggregate_preamble,
    bind_parameters,
    classify,
    drop_statement,
    infer_output_columns,
    refine_parameter_types,
    synthesize,
)
from qb_sql.schemas import (
    ObjectKind,
    QueryDefinition,
    QueryParameter,
    TYPE_CODE_CROSSTAB,
    TYPE_CODE_MAKE_TABLE,
)


class TestBindParameters:

    def test_bracketed_parameter(self):
        sql, params = bind_parameters(
            "SELECT * FROM t WHERE d >= [Start Date]",
            [QueryParameter("Start Date", "DateTime")],
        )
        assert sql == "SELECT * FROM t WHERE d >= p_start_date"
        assert params == [BoundParameter("Start Date", "p_start_date", "timestamp")]

    def test_bare_parameter(self):
        sql, params = bind_parameters("SELECT * FROM t WHERE id = CustID", [QueryParameter("CustID", "Long")])
        assert sql == "SELECT * FROM t WHERE id = p_custid"
        assert params[0].declaration == "p_custid bigint"

    def test_strings_untouched(self):
        sql, _ = bind_parameters("WHERE name = 'CustID' OR id = CustID", [QueryParameter("CustID")])
        assert sql == "WHERE name = 'CustID' OR id = p_custid"

    def test_qualified_columns_untouched(self):
        sql, _ = bind_parameters("WHERE t.CustID = CustID", [QueryParameter("CustID")])
        assert sql == "WHERE t.CustID = p_custid"

    def test_widget_references_are_not_parameters(self):
        sql, params = bind_parameters(
            "WHERE id = [Forms]![frmCustomers]![txtID]",
            [QueryParameter("[Forms]![frmCustomers]![txtID]", "Long")],
        )
        assert params == []
        assert sql == "WHERE id = [Forms]![frmCustomers]![txtID]"

    def test_duplicate_declarations_collapse(self):
        _, params = bind_parameters("WHERE a = [X]", [QueryParameter("X"), QueryParameter("x", "Long")])
        assert [p.name for p in params] == ["p_x"]

    def test_unknown_type_defaults_to_text(self):
        _, params = bind_parameters("WHERE a = [X]", [QueryParameter("X", "Hyperlink")])
        assert params[0].type == "text"


def test_refine_parameter_types_from_compared_column(catalog):
    params = [BoundParameter("CustID", "p_custid", "text"), BoundParameter("Other", "p_other", "date")]
    refine_parameter_types(params, "SELECT * FROM orders WHERE customer_id = p_custid", catalog)
    assert params[0].type == "integer"
    assert params[1].type == "date"


class TestClassify:

    def _query(self, sql, **kwargs):
        return QueryDefinition(name="q", sql=sql, **kwargs)

    @pytest.mark.parametrize("sql,expected", [
        ("SELECT a FROM t", QueryClass.SELECT),
        ("INSERT INTO t (a) SELECT a FROM s", QueryClass.INSERT),
        ("UPDATE t SET a = 1", QueryClass.UPDATE),
        ("DELETE FROM t WHERE a = 1", QueryClass.DELETE),
        ("TRANSFORM Sum(q) SELECT p FROM s GROUP BY p PIVOT r", QueryClass.CROSSTAB),
    ])
    def test_statement_shape(self, sql, expected):
        assert classify(self._query(sql), sql, has_parameters=False) is expected

    def test_parameters_make_a_select_parameterized(self):
        sql = "SELECT a FROM t WHERE b = p_x"
        assert classify(self._query(sql), sql, has_parameters=True) is QueryClass.PARAMETERIZED_SELECT

    def test_type_code_wins(self):
        sql = "SELECT a FROM t"
        assert classify(self._query(sql, type_code=TYPE_CODE_CROSSTAB), sql, False) is QueryClass.CROSSTAB
        assert classify(self._query(sql, type_code=TYPE_CODE_MAKE_TABLE), sql, False) is QueryClass.MAKE_TABLE

    def test_action_classes(self):
        assert QueryClass.UPDATE.is_action
        assert QueryClass.MAKE_TABLE.is_action
        assert not QueryClass.PARAMETERIZED_SELECT.is_action


class TestInferOutputColumns:

    def test_typed_from_catalog(self, catalog):
        sql = (
            "SELECT o.order_id, o.total AS Amount, c.name "
            "FROM orders o JOIN customers c ON o.customer_id = c.customer_id"
        )
        assert infer_output_columns(sql, catalog) == [
            ("order_id", "integer"),
            ("amount", "numeric"),
            ("name", "text"),
        ]

    def test_untyped_without_catalog(self):
        assert infer_output_columns("SELECT OrderID, OrderDate FROM Orders") == [
            ("orderid", "text"),
            ("orderdate", "text"),
        ]

    def test_cast_gives_type(self):
        assert infer_output_columns("SELECT x::date AS d FROM t") == [("d", "date")]

    def test_star_expanded_from_catalog(self, catalog):
        columns = infer_output_columns("SELECT * FROM customers", catalog)
        assert columns == [("customer_id", "integer"), ("name", "text")]

    def test_star_without_catalog_is_unknown(self):
        assert infer_output_columns("SELECT * FROM customers") is None

    def test_unnamed_expression_is_unknown(self):
        assert infer_output_columns("SELECT a + b FROM t") is None

    def test_duplicate_names_are_unknown(self):
        assert infer_output_columns("SELECT a.id, b.id FROM a JOIN b ON a.x = b.x") is None


class TestBuilders:

    def test_drop_view(self):
        assert drop_statement(ObjectKind.VIEW, "app", "qryOrders") == "DROP VIEW IF EXISTS app.qryorders"

    def test_drop_function_lists_argument_types(self):
        params = [BoundParameter("A", "p_a", "date"), BoundParameter("B", "p_b", "integer")]
        assert drop_statement(ObjectKind.FUNCTION, None, "qry By Date", params) == (
            "DROP FUNCTION IF EXISTS qry_by_date(date, integer)"
        )

    def test_drop_nothing(self):
        assert drop_statement(ObjectKind.NONE, "app", "x") is None

    @pytest.mark.parametrize("kind", [ObjectKind.VIEW, ObjectKind.FUNCTION])
    def test_drops_never_cascade(self, kind):
        params = [BoundParameter("A", "p_a", "date")]
        for schema in (None, "app"):
            assert "CASCADE" not in drop_statement(kind, schema, "qryOrders", params).upper()

    def test_aggregate_preamble_is_idempotent(self):
        statements = aggregate_preamble("app")
        assert len(statements) == 2
        assert all("IF NOT EXISTS" in s for s in statements)
        assert "CREATE AGGREGATE app.first_agg(anyelement)" in statements[0]
        assert "CREATE AGGREGATE app.last_agg(anyelement)" in statements[1]


class TestSynthesize:

    def test_plain_select_is_a_view(self):
        query = QueryDefinition("qryCustomers", "SELECT name FROM customers")
        out = synthesize(query, query.sql, [], schema="app")
        assert out.kind is ObjectKind.VIEW
        assert out.statements == ["CREATE OR REPLACE VIEW app.qrycustomers AS\nSELECT name FROM customers"]
        assert out.drop_statement == "DROP VIEW IF EXISTS app.qrycustomers"

    def test_parameterized_select_returns_table(self, catalog):
        query = QueryDefinition("qryByCustomer", "")
        body = "SELECT order_id, total FROM orders WHERE customer_id = p_cust"
        params = [BoundParameter("Cust", "p_cust", "integer")]
        out = synthesize(query, body, params, schema="app", catalog=catalog)
        assert out.kind is ObjectKind.FUNCTION
        ddl = out.statements[0]
        assert ddl.startswith("CREATE OR REPLACE FUNCTION app.qrybycustomer(p_cust integer)\n")
        assert "RETURNS TABLE(order_id integer, total numeric)" in ddl
        assert "_q.order_id::integer, _q.total::numeric" in ddl
        assert ddl.endswith("$$ LANGUAGE SQL STABLE")
        assert out.output_columns == ["order_id", "total"]
        assert out.warnings == []

    def test_parameterized_select_with_unknown_shape(self):
        query = QueryDefinition("qryAll", "")
        out = synthesize(query, "SELECT * FROM t WHERE a = p_x", [BoundParameter("X", "p_x")])
        assert "RETURNS SETOF record" in out.statements[0]
        assert out.warnings[0].startswith("Could not infer output columns")

    def test_action_query_returns_row_count(self):
        query = QueryDefinition("qryShip", "")
        out = synthesize(query, "UPDATE orders SET shipped = true", [])
        ddl = out.statements[0]
        assert out.kind is ObjectKind.FUNCTION
        assert "RETURNS integer" in ddl
        assert "  UPDATE orders SET shipped = true;\n" in ddl
        assert "GET DIAGNOSTICS _count = ROW_COUNT" in ddl
        assert "LANGUAGE plpgsql VOLATILE" in ddl

    def test_make_table_drops_and_recreates(self):
        query = QueryDefinition("qryArchive", "", type_code=TYPE_CODE_MAKE_TABLE)
        out = synthesize(query, "SELECT * INTO archive FROM orders WHERE total > 0", [])
        ddl = out.statements[0]
        assert out.kind is ObjectKind.FUNCTION
        assert "  DROP TABLE IF EXISTS archive;\n" in ddl
        assert "  CREATE TABLE archive AS\n  SELECT * FROM orders WHERE total > 0;\n" in ddl

    def test_crosstab_needs_manual_conversion(self):
        sql = "TRANSFORM Sum(q) SELECT p FROM s GROUP BY p PIVOT r"
        out = synthesize(QueryDefinition("qryPivot", sql), sql, [])
        assert out.kind is ObjectKind.NONE
        assert out.statements[0].startswith("-- Crosstab query")
        assert out.warnings[0].startswith("Crosstab queries require manual conversion")

    def test_custom_aggregates_get_a_preamble(self):
        query = QueryDefinition("qryFirst", "")
        out = synthesize(query, "SELECT customer_id, first_agg(order_date) AS first_order FROM orders GROUP BY customer_id", [])
        assert len(out.statements) == 3
        assert out.statements[0].startswith("DO $$")
        assert out.statements[2].startswith("CREATE OR REPLACE VIEW qryfirst AS")
