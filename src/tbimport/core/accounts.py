"""
Standard chart of accounts and account-name helpers.

Provides:
- normalize_account_name: the ledger matching key
- normalize_category / infer_category: Assets/Liabilities/Equity/Income/Expenses
- resolve_standard_account: alias and chart lookup to a standard display name
- is_total_row / is_summary_row: totals lines and section captions
"""

import re
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


ASSETS = "Assets"
LIABILITIES = "Liabilities"
EQUITY = "Equity"
INCOME = "Income"
EXPENSES = "Expenses"

CATEGORIES: Tuple[str, ...] = (ASSETS, LIABILITIES, EQUITY, INCOME, EXPENSES)

# Standard accounts grouped by category (sub-group -> account names)
CHART_OF_ACCOUNTS: Mapping[str, Mapping[str, Tuple[str, ...]]] = MappingProxyType({
    ASSETS: MappingProxyType({
        "Current Assets": (
            "Cash on Hand",
            "Bank Accounts",
            "Accounts Receivable",
            "Due from Related Parties",
            "Advances to Suppliers",
            "Prepaid Expenses",
            "Deposits",
            "Inventory - Goods",
            "Work-in-Progress - Services",
            "VAT Recoverable (Input VAT)",
        ),
        "Non-Current Assets": (
            "Furniture & Equipment",
            "Vehicles",
            "Intangibles (Software, Patents)",
            "Loans to Related Parties",
        ),
        "Contra Accounts": ("Accumulated Depreciation",),
    }),
    LIABILITIES: MappingProxyType({
        "Current Liabilities": (
            "Accounts Payable",
            "Due to Related Parties",
            "Accrued Expenses",
            "Advances from Customers",
            "Short-Term Loans",
            "VAT Payable (Output VAT)",
            "Corporate Tax Payable",
        ),
        "Long-Term Liabilities": (
            "Long-Term Loans",
            "Loans from Related Parties",
            "Employee End-of-Service Benefits Provision",
        ),
    }),
    EQUITY: MappingProxyType({
        "Equity": (
            "Share Capital",
            "Retained Earnings",
            "Current Year Profit/Loss",
            "Dividends / Owner's Drawings",
            "Owner's Current Account",
        ),
    }),
    INCOME: MappingProxyType({
        "Operating Income": ("Sales Revenue", "Sales to Related Parties"),
        "Other Income": ("Other Operating Income", "Interest Income", "Miscellaneous Income"),
    }),
    EXPENSES: MappingProxyType({
        "Direct Costs": ("Direct Cost (COGS)", "Purchases from Related Parties"),
        "Other Expenses": (
            "Salaries & Wages",
            "Staff Benefits",
            "Rent Expense",
            "Utility - Electricity & Water",
            "Utility - Telephone & Internet",
            "Office Supplies & Stationery",
            "Repairs & Maintenance",
            "Insurance Expense",
            "Marketing & Advertising",
            "Travel & Entertainment",
            "Professional Fees",
            "Legal Fees",
            "IT & Software Subscriptions",
            "Bank Charges",
            "Interest Expense",
            "Depreciation Expense",
        ),
    }),
})

# Ordered: first matching category wins
_CATEGORY_TEXT_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (INCOME, ("revenue", "income", "gain", "dividend", "profit")),
    (EXPENSES, ("expense", "cost", "loss", "depreciation", "amortization", "impairment", "finance cost")),
    (ASSETS, ("asset",)),
    (LIABILITIES, ("liabilit", "payable", "overdraft", "loan", "debenture")),
    (EQUITY, ("equity", "shareholder", "capital", "owner")),
)

_ACCOUNT_NAME_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (EQUITY, ("equity", "capital", "retained earnings", "owner", "shareholder", "drawings")),
    (LIABILITIES, ("payable", "liabilit", "loan", "overdraft", "debenture", "bond", "lease",
                   "deferred tax", "accrued", "provision")),
    (EXPENSES, ("expense", "cost", "loss", "depreciation", "amortization", "impairment", "freight",
                "shipping", "warehouse", "marketing", "advertising", "salary", "salaries", "wage",
                "rent", "bank charge", "utilit", "insurance", "fees")),
    (INCOME, ("revenue", "income", "gain", "profit", "dividend", "sales")),
    (ASSETS, ("asset", "cash", "bank", "receivable", "inventory", "prepaid", "deposit",
              "marketable", "equipment", "vehicle", "furniture")),
)

# Totals lines; never ledger accounts
TOTAL_ROW_NAMES = frozenset({
    "total",
    "totals",
    "grand total",
    "sub total",
    "subtotal",
    "net total",
})

# Totals lines and section captions; a caption carrying amounts is an account
SUMMARY_ROW_NAMES = TOTAL_ROW_NAMES | frozenset({
    "account",
    "account name",
    "profit loss",
    "profit and loss",
    "balance sheet",
    "statement of financial position",
    "statement of profit or loss",
    "trial balance",
    "assets",
    "liabilities",
    "equity",
    "income",
    "expenses",
})


def normalize_account_name(value: Optional[str]) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = str(value if value is not None else "").lower()
    text = re.sub(r"[^\w\s]", " ", text)
    text = text.replace("_", " ")
    return re.sub(r"\s+", " ", text).strip()


def _build_account_lookup() -> Mapping[str, Tuple[str, str, str]]:
    lookup: Dict[str, Tuple[str, str, str]] = {}
    for category, groups in CHART_OF_ACCOUNTS.items():
        for group, accounts in groups.items():
            for account in accounts:
                lookup[normalize_account_name(account)] = (account, category, group)
    return MappingProxyType(lookup)


# normalized name -> (standard name, category, sub-group)
ACCOUNT_LOOKUP = _build_account_lookup()


def normalize_category(value: Optional[str]) -> Optional[str]:
    """
    Map free-text category to one of CATEGORIES.

    Statement-level captions ("Balance Sheet", "Profit & Loss") carry no
    category information and return None.
    """
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value).lower()).strip()
    if not text or text in ("profit & loss", "profit and loss", "balance sheet"):
        return None
    for category in CATEGORIES:
        if text == category.lower():
            return category
    for category, needles in _CATEGORY_TEXT_RULES:
        if any(needle in text for needle in needles):
            return category
    return None


def infer_category(account_name: str) -> Optional[str]:
    """Infer a category from the standard chart, then from name keywords."""
    entry = ACCOUNT_LOOKUP.get(normalize_account_name(account_name))
    if entry:
        return entry[1]
    lower = str(account_name).lower()
    for category, needles in _ACCOUNT_NAME_RULES:
        if any(needle in lower for needle in needles):
            return category
    return None


def resolve_standard_account(name: str, aliases: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the standard display name for an account.

    Configured aliases win over the chart; names that match neither are
    returned stripped but otherwise unchanged.
    """
    key = normalize_account_name(name)
    if aliases:
        for alias, target in aliases.items():
            if normalize_account_name(alias) == key:
                return target
    entry = ACCOUNT_LOOKUP.get(key)
    if entry:
        return entry[0]
    return str(name).strip()


def is_total_row(name: str) -> bool:
    """True for totals and subtotal lines ("Total", "Total Assets", "Grand Total")."""
    key = normalize_account_name(name)
    return key in TOTAL_ROW_NAMES or key.startswith("total ")


def is_summary_row(name: str) -> bool:
    """True for totals lines and section captions."""
    return is_total_row(name) or normalize_account_name(name) in SUMMARY_ROW_NAMES
