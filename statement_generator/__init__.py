"""
Statement Generator: Trial Balance to Financial Statements.

Maps an uploaded trial balance onto a canonical schema, builds the balance
sheet, income statement, cash flow and notes as hierarchical trees, keeps
every subtotal and formula consistent as amounts are edited, and posts
period-keyed adjustment journals to the accounting backend.
"""

__version__ = "1.0.0"
__author__ = "Statement Generator Team"

from statement_generator.column_mapper import ColumnMapper  # noqa: F401
from statement_generator.hierarchy import apply_edit, recalculate  # noqa: F401
from statement_generator.journal import JournalPage  # noqa: F401
