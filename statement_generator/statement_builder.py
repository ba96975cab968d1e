"""
Statement Builder.

Turns a statement template plus mapped trial-balance rows into a
recalculated ``HierarchicalItem`` tree.

A template is the wire form of a hierarchy without amounts.  Each leaf may
carry ``keywords``: its amounts become the sum of every mapped row whose
``Level 1 Desc`` contains one of them (case-insensitive).  An optional
``level2Keywords`` list narrows the match on ``Level 2 Desc``.  Subtotals
and formulas are filled in by the recalculation engine afterwards.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Sequence, Tuple

from statement_generator.errors import SchemaError
from statement_generator.hierarchy import recalculate
from statement_generator.logging_setup import get_logger
from statement_generator.schema import HierarchicalItem, MappedRow

logger = get_logger("statement_builder")

StatementTemplate = List[Dict[str, Any]]


def _lower(terms: Optional[Sequence[str]]) -> List[str]:
    return [str(t).strip().lower() for t in terms or [] if str(t).strip()]


def keyword_amount(
    rows: Sequence[MappedRow],
    label: str,
    level1_keywords: Optional[Sequence[str]],
    level2_keywords: Optional[Sequence[str]] = None,
) -> float:
    """Sum *label* amounts over rows matching the keyword filters.

    No Level 1 keywords means no match (``0.0``).  When *level2_keywords*
    is given, a row must match both levels.
    """
    level1 = _lower(level1_keywords)
    if not level1:
        return 0.0
    level2 = _lower(level2_keywords) if level2_keywords is not None else None

    total = 0.0
    for row in rows:
        desc1 = str(row.level1_desc or "").lower()
        if not any(kw in desc1 for kw in level1):
            continue
        if level2 is not None:
            desc2 = str(row.level2_desc or "").lower()
            if not any(kw in desc2 for kw in level2):
                continue
        total += row.amount(label)
    return total


class _Filler:
    def __init__(self, rows: Sequence[MappedRow], current_label: str, previous_label: str) -> None:
        self.rows = rows
        self.current_label = current_label
        self.previous_label = previous_label
        self.matched = 0

    def fill(self, node: Dict[str, Any]) -> HierarchicalItem:
        if not isinstance(node, dict):
            raise SchemaError(f"Template item must be an object, got {node!r}")
        children = [self.fill(c) for c in node.get("children") or []]
        fields = {k: v for k, v in node.items() if k not in ("children", "level2Keywords")}
        item = HierarchicalItem.from_dict(fields)
        item.children = children

        if item.keywords and not children:
            level2 = node.get("level2Keywords")
            item.value_current = keyword_amount(self.rows, self.current_label, item.keywords, level2)
            item.value_previous = keyword_amount(self.rows, self.previous_label, item.keywords, level2)
            self.matched += 1
        return item


def build_statement(
    template: StatementTemplate,
    rows: Sequence[MappedRow],
    current_label: str,
    previous_label: str,
) -> List[HierarchicalItem]:
    """Build and recalculate a statement from *template*.

    Parameters
    ----------
    template:
        Wire-form items (``key``, ``label``, ``keywords``, ``children``,
        ``formula``, ``id`` and the usual flags).
    rows:
        Mapped trial-balance rows.
    current_label, previous_label:
        Period labels the rows' amounts are keyed by.

    Raises
    ------
    SchemaError
        When a template item is malformed.
    """
    filler = _Filler(rows, current_label, previous_label)
    items = [filler.fill(node) for node in template]
    logger.info(
        "Built statement: %d top-level rows, %d keyword rows, %d source rows",
        len(items),
        filler.matched,
        len(rows),
    )
    return recalculate(items)


def template(name: str) -> StatementTemplate:
    """Return a copy of a built-in template by name."""
    try:
        return copy.deepcopy(TEMPLATES[name])
    except KeyError:
        raise KeyError(f"Unknown statement template {name!r}; known: {sorted(TEMPLATES)}") from None


# ---------------------------------------------------------------------------
# Built-in templates (abridged)
# ---------------------------------------------------------------------------

INCOME_STATEMENT: StatementTemplate = [
    {"key": "is-income", "label": "INCOME", "id": "totalIncome", "isSubtotal": True, "children": [
        {"key": "is-rev-ops", "label": "Revenue from operations", "note": 18,
         "keywords": ["revenue from operations"]},
        {"key": "is-other-inc", "label": "Other income", "note": 19, "keywords": ["other income"]},
    ]},
    {"key": "is-expenses", "label": "EXPENSES", "id": "totalExpenses", "isSubtotal": True, "children": [
        {"key": "is-exp-mat", "label": "Cost of materials consumed", "note": "20a",
         "keywords": ["cost of material consumed"]},
        {"key": "is-exp-pur", "label": "Purchase of traded goods", "note": "20a",
         "keywords": ["purchase of traded goods"]},
        {"key": "is-exp-inv", "label": "Changes in inventories", "note": "20a",
         "keywords": ["changes in inventories"]},
        {"key": "is-exp-emp", "label": "Employee benefits expense", "note": 21,
         "keywords": ["employee benefits expense"]},
        {"key": "is-exp-fin", "label": "Finance cost", "note": 22, "keywords": ["finance cost"]},
        {"key": "is-exp-dep", "label": "Depreciation and amortisation", "note": 23,
         "keywords": ["depreciation expense"]},
        {"key": "is-exp-oth", "label": "Other expenses", "note": 24, "keywords": ["other expenses"]},
    ]},
    {"key": "is-pbeit", "label": "PROFIT BEFORE EXCEPTIONAL ITEM & TAXES", "id": "pbeit",
     "isSubtotal": True, "formula": ["totalIncome", "-", "totalExpenses"]},
    {"key": "is-except", "label": "Exceptional Income", "id": "exceptional", "note": 44,
     "keywords": ["exceptional items"]},
    {"key": "is-pbt", "label": "PROFIT BEFORE TAX", "id": "pbt", "isSubtotal": True,
     "formula": ["pbeit", "+", "exceptional"]},
    {"key": "is-tax", "label": "TAX EXPENSE:", "id": "totalTax", "isSubtotal": True, "children": [
        {"key": "is-tax-curr", "label": "Current tax", "note": 34, "keywords": ["current tax"]},
        {"key": "is-tax-def", "label": "Deferred tax", "note": 34, "keywords": ["deferred tax"]},
    ]},
    {"key": "is-pat", "label": "PROFIT FOR THE YEAR", "id": "pat", "isGrandTotal": True,
     "formula": ["pbt", "-", "totalTax"]},
]

BALANCE_SHEET: StatementTemplate = [
    {"key": "bs-assets", "label": "ASSETS", "id": "totalAssets", "isGrandTotal": True, "children": [
        {"key": "bs-assets-nc", "label": "Non-current assets", "isSubtotal": True, "children": [
            {"key": "bs-assets-nc-ppe", "label": "Property, plant and equipment", "note": 3,
             "keywords": ["property, plant and equipment"]},
            {"key": "bs-assets-nc-rou", "label": "Right of use asset", "note": 4,
             "keywords": ["right of use assets"]},
            {"key": "bs-assets-nc-cwip", "label": "Capital work-in-progress",
             "keywords": ["capital work in progress"]},
            {"key": "bs-assets-nc-dta", "label": "Deferred tax assets (net)", "note": 24,
             "keywords": ["deferred tax assets (net)"]},
        ]},
        {"key": "bs-assets-c", "label": "Current assets", "isSubtotal": True, "children": [
            {"key": "bs-assets-c-inv", "label": "Inventories", "note": 8, "keywords": ["inventories"]},
            {"key": "bs-assets-c-fin", "label": "Financial Assets", "isSubtotal": True, "children": [
                {"key": "bs-assets-c-fin-tr", "label": "Trade receivables", "note": 9,
                 "keywords": ["trade receivables"]},
                {"key": "bs-assets-c-fin-cce", "label": "Cash and cash equivalents", "note": 11,
                 "keywords": ["cash and cash equivalents"]},
            ]},
        ]},
    ]},
    {"key": "bs-eq-liab", "label": "EQUITY AND LIABILITIES", "isGrandTotal": True,
     "formula": ["eq", "+", "liab-nc", "+", "liab-c"], "children": [
        {"key": "bs-eq", "label": "Equity", "id": "eq", "isSubtotal": True, "children": [
            {"key": "bs-eq-capital", "label": "Equity share capital", "note": 12,
             "keywords": ["equity share capital"]},
            {"key": "bs-eq-other", "label": "Other equity", "note": 13, "keywords": ["other equity"]},
        ]},
        {"key": "bs-liab-nc", "label": "Non-current liabilities", "id": "liab-nc", "isSubtotal": True,
         "children": [
            {"key": "bs-liab-nc-lease", "label": "Lease Liabilities", "note": 25,
             "keywords": ["other non current financial liabilities"]},
            {"key": "bs-liab-nc-prov", "label": "Provisions", "note": 17,
             "keywords": ["long term provisions"]},
        ]},
        {"key": "bs-liab-c", "label": "Current liabilities", "id": "liab-c", "isSubtotal": True,
         "children": [
            {"key": "bs-liab-c-lease", "label": "Lease Liabilities", "note": 29,
             "keywords": ["other current financial liabilities"]},
            {"key": "bs-liab-c-tp", "label": "Trade payables", "note": 14, "keywords": ["trade payables"]},
            {"key": "bs-liab-c-prov", "label": "Provisions", "note": 17, "keywords": ["short term provisions"]},
        ]},
    ]},
]

TEMPLATES: Dict[str, StatementTemplate] = {
    "income_statement": INCOME_STATEMENT,
    "balance_sheet": BALANCE_SHEET,
}


# ---------------------------------------------------------------------------
# Cash flow (indirect method)
# ---------------------------------------------------------------------------

INCOME_KEYWORDS = ["revenue", "other income"]
EXPENSE_KEYWORDS = [
    "cost of material consumed",
    "purchase of traded goods",
    "changes in inventories",
    "employee benefits expense",
    "finance cost",
    "depreciation expense",
    "other expenses",
]


def _line(key: str, label: str, current: float, previous: float) -> HierarchicalItem:
    return HierarchicalItem(
        key=key,
        label=label,
        value_current=current,
        value_previous=previous,
        is_editable_row=True,
    )


def build_cash_flow(
    rows: Sequence[MappedRow],
    current_label: str,
    previous_label: str,
) -> List[HierarchicalItem]:
    """Derive the cash-flow statement from mapped trial-balance rows.

    Profit before tax is income less expenses; depreciation and finance
    cost are added back, then the movement in receivables, inventories and
    payables between the two periods.  Investing activity is the change in
    fixed assets plus depreciation; financing is the equity movement net of
    retained profit, the change in non-current financial liabilities and
    interest paid.

    Balance movements need the year before the previous period, so the
    previous-period working capital, investing and financing lines are zero.
    Section totals are formulas over their lines and stay consistent under
    ``CashFlowEditor`` edits.
    """

    def amount(label: str, keywords: Sequence[str]) -> float:
        return keyword_amount(rows, label, keywords)

    def both(keywords: Sequence[str]) -> Tuple[float, float]:
        return amount(current_label, keywords), amount(previous_label, keywords)

    income, income_prev = both(INCOME_KEYWORDS)
    expenses, expenses_prev = both(EXPENSE_KEYWORDS)
    pbt, pbt_prev = income - expenses, income_prev - expenses_prev
    dep, dep_prev = both(["depreciation"])
    fin_cost, fin_cost_prev = both(["finance cost"])
    tax, tax_prev = both(["tax expense"])

    receivables, receivables_prev = both(["trade receivables"])
    inventories, inventories_prev = both(["inventories"])
    payables, payables_prev = both(["trade payables"])
    fixed_assets, fixed_assets_prev = both(["property, plant", "intangible"])
    equity, equity_prev = both(["equity"])
    debt, debt_prev = both(["other non current financial liabilities"])

    capex = -(fixed_assets - fixed_assets_prev + dep)
    equity_raised = (equity - equity_prev) - (pbt - tax)

    items = [
        HierarchicalItem(
            key="cf-op", label="A. Cash flow from operating activities", id="cfo",
            is_subtotal=True, formula=("cf-cgo", "+", "cf-tax"),
            children=[
                _line("cf-pbt", "Profit before tax", pbt, pbt_prev),
                HierarchicalItem(key="cf-op-adj", label="Adjustments for:", children=[
                    _line("cf-dep", "Depreciation and amortisation", dep, dep_prev),
                    _line("cf-fin-cost", "Finance costs", fin_cost, fin_cost_prev),
                ]),
                HierarchicalItem(
                    key="cf-op-wc", label="Operating profit before working capital changes",
                    is_subtotal=True, formula=("cf-pbt", "+", "cf-op-adj"),
                ),
                HierarchicalItem(key="cf-wc-adj", label="Changes in working capital:", children=[
                    _line("cf-rec", "(Increase)/decrease in trade receivables",
                          receivables_prev - receivables, 0.0),
                    _line("cf-inventories", "(Increase)/decrease in inventories",
                          inventories_prev - inventories, 0.0),
                    _line("cf-pay", "Increase/(decrease) in trade payables",
                          payables - payables_prev, 0.0),
                ]),
                HierarchicalItem(
                    key="cf-cgo", label="Cash generated from operations",
                    is_subtotal=True, formula=("cf-op-wc", "+", "cf-wc-adj"),
                ),
                _line("cf-tax", "Income taxes paid", -tax, -tax_prev),
            ],
        ),
        HierarchicalItem(
            key="cf-inv", label="B. Cash flow from investing activities", id="cfi",
            is_subtotal=True,
            children=[
                _line("cf-capex", "Purchase of property, plant and equipment", capex, 0.0),
            ],
        ),
        HierarchicalItem(
            key="cf-fin", label="C. Cash flow from financing activities", id="cff",
            is_subtotal=True,
            children=[
                _line("cf-equity", "Proceeds from issuance of share capital", equity_raised, 0.0),
                _line("cf-debt", "Proceeds from borrowings", debt - debt_prev, 0.0),
                _line("cf-int", "Interest paid", -fin_cost, -fin_cost_prev),
            ],
        ),
        HierarchicalItem(
            key="cf-net", label="Net increase/decrease in cash", is_grand_total=True,
            formula=("cfo", "+", "cfi", "+", "cff"),
        ),
    ]
    logger.info("Built cash flow from %d source rows", len(rows))
    return recalculate(items)
