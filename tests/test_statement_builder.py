"""
Tests for building statements from templates and mapped rows.
"""

from __future__ import annotations

import pytest

from statement_generator.errors import SchemaError
from statement_generator.editors import CashFlowEditor
from statement_generator.hierarchy import find_item, path_of
from statement_generator.schema import MappedRow, NodeKind, ValueField
from statement_generator.statement_builder import (
    BALANCE_SHEET,
    INCOME_STATEMENT,
    build_cash_flow,
    build_statement,
    keyword_amount,
    template,
)

CUR = "FY24"
PREV = "FY23"


def row(level1: str, current: float, previous: float, level2: str = "") -> MappedRow:
    return MappedRow(level1_desc=level1, level2_desc=level2, amounts={CUR: current, PREV: previous})


@pytest.fixture
def rows() -> list[MappedRow]:
    return [
        row("Revenue from Operations", 1000.0, 900.0),
        row("Other Income", 50.0, 40.0),
        row("Employee benefits expense", 300.0, 280.0),
        row("Other expenses", 100.0, 90.0),
        row("Finance cost", 20.0, 25.0),
        row("Exceptional items", 10.0, 0.0),
        row("Current tax", 150.0, 130.0),
        row("Deferred tax", -5.0, 2.0),
    ]


# ======================================================================
# Keyword matching
# ======================================================================

class TestKeywordAmount:
    def test_case_insensitive_substring(self, rows) -> None:
        assert keyword_amount(rows, CUR, ["REVENUE FROM"]) == 1000.0

    def test_several_keywords(self, rows) -> None:
        assert keyword_amount(rows, PREV, ["other income", "other expenses"]) == 130.0

    def test_no_keywords(self, rows) -> None:
        assert keyword_amount(rows, CUR, []) == 0.0
        assert keyword_amount(rows, CUR, None) == 0.0

    def test_level2_narrowing(self) -> None:
        data = [
            row("Other current financial assets", 5.0, 1.0, "Unbilled receivable"),
            row("Other current financial assets", 7.0, 2.0, "Security deposits"),
        ]
        assert keyword_amount(data, CUR, ["other current financial assets"], ["unbilled"]) == 5.0
        assert keyword_amount(data, CUR, ["other current financial assets"]) == 12.0

    def test_missing_label_is_zero(self, rows) -> None:
        assert keyword_amount(rows, "FY22", ["revenue"]) == 0.0


# ======================================================================
# Statement building
# ======================================================================

class TestBuildStatement:
    def test_income_statement(self, rows) -> None:
        items = build_statement(INCOME_STATEMENT, rows, CUR, PREV)
        assert find_item(items, "is-income").value_current == 1050.0
        assert find_item(items, "is-expenses").value_current == 420.0
        assert find_item(items, "is-pbeit").value_current == 630.0
        assert find_item(items, "is-pbt").value_current == 640.0
        assert find_item(items, "is-tax").value_current == 145.0
        assert find_item(items, "is-pat").value_current == 495.0

    def test_previous_period(self, rows) -> None:
        items = build_statement(INCOME_STATEMENT, rows, CUR, PREV)
        # income 940, expenses 395, tax 132
        assert find_item(items, "is-pat").value_previous == 413.0

    def test_unmatched_keyword_rows_are_zero(self, rows) -> None:
        items = build_statement(INCOME_STATEMENT, rows, CUR, PREV)
        assert find_item(items, "is-exp-mat").value_current == 0.0

    def test_balance_sheet_formula_over_children(self) -> None:
        data = [
            row("Equity share capital", 100.0, 100.0),
            row("Other equity", 50.0, 30.0),
            row("Trade payables", 25.0, 20.0),
            row("Cash and cash equivalents", 175.0, 150.0),
        ]
        items = build_statement(BALANCE_SHEET, data, CUR, PREV)
        assert find_item(items, "bs-eq-liab").value_current == 175.0
        assert find_item(items, "bs-assets").value_current == 175.0

    def test_template_not_mutated(self, rows) -> None:
        build_statement(INCOME_STATEMENT, rows, CUR, PREV)
        assert "valueCurrent" not in INCOME_STATEMENT[0]["children"][0]

    def test_custom_template(self, rows) -> None:
        custom = [{"key": "rev", "label": "Revenue", "keywords": ["revenue"]}]
        items = build_statement(custom, rows, CUR, PREV)
        assert items[0].value_current == 1000.0
        assert items[0].to_dict()["keywords"] == ["revenue"]

    def test_malformed_template(self, rows) -> None:
        with pytest.raises(SchemaError):
            build_statement([{"label": "no key"}], rows, CUR, PREV)


class TestTemplates:
    def test_lookup_returns_copy(self) -> None:
        t = template("income_statement")
        t[0]["label"] = "changed"
        assert INCOME_STATEMENT[0]["label"] == "INCOME"

    def test_unknown_template(self) -> None:
        with pytest.raises(KeyError):
            template("cash_flow_direct")


# ======================================================================
# Cash flow
# ======================================================================

@pytest.fixture
def cash_rows() -> list[MappedRow]:
    return [
        row("Revenue from operations", 1000.0, 800.0),
        row("Other expenses", 300.0, 200.0),
        row("Depreciation expense", 50.0, 40.0),
        row("Finance cost", 20.0, 10.0),
        row("Tax expense", 100.0, 80.0),
        row("Trade receivables", 150.0, 100.0),
        row("Inventories", 60.0, 80.0),
        row("Trade payables", 90.0, 70.0),
        row("Property, plant and equipment", 500.0, 450.0),
        row("Equity share capital", 1000.0, 900.0),
        row("Other non current financial liabilities", 40.0, 30.0),
    ]


def values(items, key: str) -> tuple:
    item = find_item(items, key)
    return item.value_current, item.value_previous


class TestCashFlow:
    def test_operating_section(self, cash_rows) -> None:
        items = build_cash_flow(cash_rows, CUR, PREV)
        assert values(items, "cf-pbt") == (630.0, 550.0)
        assert values(items, "cf-op-adj") == (70.0, 50.0)
        assert values(items, "cf-op-wc") == (700.0, 600.0)
        assert values(items, "cf-wc-adj") == (-10.0, 0.0)
        assert values(items, "cf-cgo") == (690.0, 600.0)
        assert values(items, "cf-op") == (590.0, 520.0)

    def test_working_capital_movements(self, cash_rows) -> None:
        items = build_cash_flow(cash_rows, CUR, PREV)
        assert values(items, "cf-rec")[0] == -50.0
        assert values(items, "cf-inventories")[0] == 20.0
        assert values(items, "cf-pay")[0] == 20.0

    def test_investing_and_financing(self, cash_rows) -> None:
        items = build_cash_flow(cash_rows, CUR, PREV)
        assert values(items, "cf-capex") == (-100.0, 0.0)
        assert values(items, "cf-equity") == (-430.0, 0.0)
        assert values(items, "cf-debt") == (10.0, 0.0)
        assert values(items, "cf-fin") == (-440.0, -10.0)

    def test_net_change(self, cash_rows) -> None:
        items = build_cash_flow(cash_rows, CUR, PREV)
        assert [i.key for i in items] == ["cf-op", "cf-inv", "cf-fin", "cf-net"]
        assert values(items, "cf-net") == (50.0, 510.0)

    def test_totals_are_derived(self, cash_rows) -> None:
        items = build_cash_flow(cash_rows, CUR, PREV)
        assert find_item(items, "cf-net").kind is NodeKind.FORMULA
        assert not find_item(items, "cf-cgo").accepts_value_edit
        assert find_item(items, "cf-dep").accepts_value_edit

    def test_edits_flow_through_editor(self, cash_rows) -> None:
        editor = CashFlowEditor(build_cash_flow(cash_rows, CUR, PREV))
        editor.set_value(path_of(editor.items, "cf-dep"), ValueField.CURRENT, 60.0)
        assert values(editor.items, "cf-op-wc")[0] == 710.0
        assert values(editor.items, "cf-op")[0] == 600.0
        assert values(editor.items, "cf-net")[0] == 60.0

    def test_no_rows(self) -> None:
        items = build_cash_flow([], CUR, PREV)
        assert values(items, "cf-net") == (0.0, 0.0)
