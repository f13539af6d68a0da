"""Reference resolver tests."""

from qb_sql.conversion.references import (
    TEMPVARS_TABLE,
    ReferenceResolver,
    state_subquery,
)
from qb_sql.mapping import ControlBinding, ControlMapping


class TestQualifiedReferences:
    """[Forms]![form]![control] and its spellings."""

    def test_bracketed_reference(self, customer_mapping):
        result = ReferenceResolver(customer_mapping).resolve(
            "SELECT * FROM Orders WHERE CustomerID = [Forms]![frmCustomers]![txtID]"
        )
        assert result.sql == "SELECT * FROM Orders WHERE CustomerID = " + state_subquery("customers", "customer_id")
        assert result.resolved == [("customers", "customer_id")]
        assert result.unresolved == []

    def test_spellings_resolve_identically(self, customer_mapping):
        resolver = ReferenceResolver(customer_mapping)
        spellings = [
            "[Forms]![frmCustomers]![txtID]",
            "Forms!frmCustomers!txtID",
            "FORMS!FRMCUSTOMERS!TXTID",
            "[Forms]![frmCustomers].[txtID]",
        ]
        outputs = {resolver.resolve(f"x = {s}").sql for s in spellings}
        assert len(outputs) == 1

    def test_report_reference(self):
        mapping = ControlMapping([ControlBinding.create("rptSales", "txtRegion", "Sales", "Region")])
        result = ReferenceResolver(mapping).resolve("WHERE r = [Reports]![rptSales]![txtRegion]")
        assert result.resolved == [("sales", "region")]

    def test_repeated_reference_recorded_once(self, customer_mapping):
        result = ReferenceResolver(customer_mapping).resolve(
            "WHERE a = Forms!frmCustomers!txtID OR b = Forms!frmCustomers!txtID"
        )
        assert result.resolved == [("customers", "customer_id")]
        assert result.sql.count("SELECT value") == 2

    def test_missing_mapping_becomes_null(self):
        result = ReferenceResolver().resolve("WHERE a = Forms!frmX!ctlY")
        assert result.sql == "WHERE a = NULL /* UNRESOLVED: Forms!frmX!ctlY */"
        assert result.unresolved[0].reference == "Forms!frmX!ctlY"
        assert result.resolved == []
        assert len(result.warnings) == 1

    def test_custom_session_setting(self, customer_mapping):
        resolver = ReferenceResolver(customer_mapping, setting="myapp.sid")
        result = resolver.resolve("x = Forms!frmCustomers!txtID")
        assert "current_setting('myapp.sid', true)" in result.sql


class TestScopedReferences:
    """[Form]![control], Parent!control, Me!control."""

    def test_control_found_on_a_mapped_form(self, customer_mapping):
        result = ReferenceResolver(customer_mapping).resolve("WHERE s = [Form]![cboStatus]")
        assert result.sql == "WHERE s = " + state_subquery("orders", "status")
        assert result.warnings == []

    def test_me_and_parent(self, customer_mapping):
        resolver = ReferenceResolver(customer_mapping)
        assert resolver.resolve("Me!txtID").resolved == [("customers", "customer_id")]
        assert resolver.resolve("Parent!txtID").resolved == [("customers", "customer_id")]

    def test_ambiguous_control_warns_and_uses_first(self):
        mapping = ControlMapping([
            ControlBinding.create("frmA", "txtID", "Customers", "Customer_ID"),
            ControlBinding.create("frmB", "txtID", "Suppliers", "Supplier_ID"),
        ])
        result = ReferenceResolver(mapping).resolve("WHERE id = [Form]![txtID]")
        assert result.resolved == [("customers", "customer_id")]
        assert result.warnings[0].startswith("Ambiguous reference Form!txtID")

    def test_same_target_on_two_forms_is_not_ambiguous(self):
        mapping = ControlMapping([
            ControlBinding.create("frmA", "txtCust", "Orders", "Customer_ID"),
            ControlBinding.create("frmB", "txtCust", "Orders", "Customer_ID"),
        ])
        assert ReferenceResolver(mapping).resolve("[Form]![txtCust]").warnings == []

    def test_unknown_control_unresolved(self):
        result = ReferenceResolver().resolve("WHERE x = Me!txtNothing")
        assert result.sql == "WHERE x = NULL /* UNRESOLVED: Me!txtNothing */"

    def test_words_ending_in_me_are_not_scopes(self, customer_mapping):
        sql = "SELECT Name!txtID"
        assert ReferenceResolver(customer_mapping).resolve(sql).sql == sql


class TestTempVars:

    def test_bang_form(self):
        result = ReferenceResolver().resolve("WHERE u = [TempVars]![CurrentUser]")
        assert result.sql == "WHERE u = " + state_subquery(TEMPVARS_TABLE, "currentuser")
        assert result.resolved == [(TEMPVARS_TABLE, "currentuser")]

    def test_call_form(self):
        result = ReferenceResolver().resolve("WHERE u = TempVars(\"UserName\")")
        assert result.resolved == [(TEMPVARS_TABLE, "username")]

    def test_item_call_form(self):
        result = ReferenceResolver().resolve("WHERE u = TempVars.Item('UserName')")
        assert result.resolved == [(TEMPVARS_TABLE, "username")]


class TestLiterals:
    """References inside strings and comments are text, not widgets."""

    def test_single_quoted_string_is_left_alone(self, customer_mapping):
        sql = "SELECT 'see Forms!frmCustomers!txtID' AS note FROM Orders"
        result = ReferenceResolver(customer_mapping).resolve(sql)
        assert result.sql == sql
        assert result.resolved == []

    def test_double_quoted_string_and_comment_are_left_alone(self):
        sql = 'SELECT "Me!txtName" AS label FROM Orders -- Forms!frmA!txtB\n'
        result = ReferenceResolver().resolve(sql)
        assert result.sql == sql
        assert result.unresolved == []

    def test_reference_beside_a_string(self, customer_mapping):
        result = ReferenceResolver(customer_mapping).resolve(
            "SELECT 'Forms!x!y' & Name FROM Customers WHERE ID = Forms!frmCustomers!txtID"
        )
        assert result.sql == (
            "SELECT 'Forms!x!y' & Name FROM Customers WHERE ID = " + state_subquery("customers", "customer_id")
        )
        assert result.resolved == [("customers", "customer_id")]

    def test_tempvars_call_with_doubled_quote(self):
        result = ReferenceResolver().resolve("WHERE u = TempVars('User''s Name')")
        assert result.resolved == [(TEMPVARS_TABLE, "users_name")]


def test_state_subquery_is_null_without_session():
    # current_setting(..., true) yields NULL instead of raising when unset
    sql = state_subquery("customers", "customer_id")
    assert "current_setting('app.session_id', true)" in sql
    assert sql.startswith("(SELECT value FROM shared.runtime_state WHERE session_id = ")
