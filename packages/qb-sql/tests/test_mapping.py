"""Control mapping, repository and catalog tests."""

import json
import threading
from unittest.mock import MagicMock

import pytest

from qb_sql.catalog import load_catalog
from qb_sql.mapping import (
    ControlBinding,
    ControlMapping,
    ControlMappingRepository,
    bindings_from_definition,
    live_synced_controls,
)


class TestControlMapping:

    def test_lookup_is_case_insensitive(self, customer_mapping):
        binding = customer_mapping.lookup("FRMCUSTOMERS", "[txtId]")
        assert binding.target == ("customers", "customer_id")
        assert ("frmCustomers", "txtID") in customer_mapping

    def test_dict_round_trip(self, customer_mapping):
        data = customer_mapping.to_dict()
        assert data["frmcustomers.txtid"] == {"table": "customers", "column": "customer_id"}
        assert ControlMapping.from_dict(data).to_dict() == data

    def test_from_dict_rejects_keys_without_a_control(self):
        with pytest.raises(ValueError):
            ControlMapping.from_dict({"frmCustomers": {"table": "t", "column": "c"}})

    def test_replace_form_drops_old_bindings(self, customer_mapping):
        customer_mapping.replace_form("frmCustomers", [
            ControlBinding.create("frmCustomers", "txtName", "Customers", "Name"),
        ])
        assert customer_mapping.lookup("frmCustomers", "txtID") is None
        assert customer_mapping.lookup("frmCustomers", "txtName") is not None
        assert customer_mapping.lookup("frmOrders", "cboStatus") is not None

    def test_reverse_lookup(self):
        mapping = ControlMapping([
            ControlBinding.create("frmA", "txtCust", "Orders", "Customer_ID"),
            ControlBinding.create("frmB", "cboCust", "Orders", "Customer_ID"),
            ControlBinding.create("frmB", "txtOther", "Orders", "Status"),
        ])
        assert [b.control for b in mapping.bindings_for_column("orders", "customer_id")] == ["txtcust", "cbocust"]

    def test_live_synced_controls(self, customer_mapping):
        synced = live_synced_controls(customer_mapping, [("customers", "customer_id"), ("customers", "customer_id")])
        assert [(b.form, b.control) for b in synced] == [("frmcustomers", "txtid")]

    def test_concurrent_replace_and_read(self):
        mapping = ControlMapping()
        errors = []

        def writer(index):
            form = f"frm{index}"
            try:
                for round_ in range(20):
                    mapping.replace_form(form, [
                        ControlBinding.create(form, f"txt{n}", "Orders", f"col{n}") for n in range(round_ % 5 + 10)
                    ])
            except Exception as e:
                errors.append(e)

        def reader():
            try:
                for _ in range(200):
                    mapping.find_control("txt3")
                    mapping.bindings_for_column("orders", "col1")
                    mapping.to_dict()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
        threads += [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(mapping) == 8 * 14
        assert len(mapping.find_control("txt3")) == 8


class TestBindingsFromDefinition:

    def test_sections_are_scanned(self):
        definition = {
            "record_source": "Orders",
            "header": {"controls": [{"name": "cboStatus", "field": "Status"}]},
            "detail": {"controls": [{"name": "txtQty", "field": "Qty"}]},
        }
        bindings = bindings_from_definition("frmOrders", definition)
        assert [(b.control, b.table, b.column) for b in bindings] == [
            ("cbostatus", "orders", "status"),
            ("txtqty", "orders", "qty"),
        ]

    def test_json_text(self):
        text = json.dumps({"record-source": "T", "detail": {"controls": [{"name": "c", "field": "f"}]}})
        assert bindings_from_definition("frm", text)[0].target == ("t", "f")

    def test_unparseable_definition(self):
        assert bindings_from_definition("frm", "{not json") == []

    def test_bound_control_without_record_source_uses_form(self):
        bindings = bindings_from_definition("frmX", {"detail": {"controls": [{"name": "a", "field": "b"}]}})
        assert bindings[0].target == ("frmx", "b")


class TestRepository:

    def test_load(self):
        executor = MagicMock()
        executor.execute.return_value = [
            {"form_name": "frmcustomers", "control_name": "txtid", "table_name": "customers", "column_name": "customer_id"},
        ]
        mapping = ControlMappingRepository(executor).load()
        assert mapping.lookup("frmCustomers", "txtID").target == ("customers", "customer_id")

    def test_replace_form_is_one_transaction(self):
        executor = MagicMock()
        bindings = [ControlBinding.create("frmCustomers", "txtID", "Customers", "Customer_ID")]

        assert ControlMappingRepository(executor).replace_form("frmCustomers", bindings) == 1

        steps = executor.run_transaction.call_args.args[0]
        assert steps[0] == ("DELETE FROM shared.control_column_map WHERE form_name = %s", ("frmcustomers",))
        assert steps[1][0].startswith("INSERT INTO shared.control_column_map")
        assert steps[1][1] == ("frmcustomers", "txtid", "customers", "customer_id")


def test_load_catalog():
    executor = MagicMock()
    executor.execute.side_effect = [
        [
            {"table_name": "orders", "column_name": "order_id", "data_type": "integer", "table_type": "BASE TABLE"},
            {"table_name": "orders", "column_name": "total", "data_type": "numeric", "table_type": "BASE TABLE"},
            {"table_name": "qryorders", "column_name": "order_id", "data_type": "integer", "table_type": "VIEW"},
        ],
        [{"name": "mycalc", "arguments": "x integer", "returns": "integer"}],
    ]
    catalog = load_catalog(executor, "app")

    assert catalog.schema == "app"
    assert catalog.column_type("Orders", "TOTAL") == "numeric"
    assert catalog.views == {"qryorders"}
    assert catalog.describe() == "orders: order_id integer, total numeric\nqryorders (view): order_id integer"
    assert catalog.describe_functions() == "mycalc(x integer) -> integer"
    assert catalog.find_column_type("order_id") == "integer"
