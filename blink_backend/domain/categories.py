"""Normalization of raw Plaid categories into display buckets"""

from typing import Dict, Optional

FOOD_AND_DINING = "Food & Dining"
GROCERIES = "Groceries"
SHOPPING = "Shopping"
TRANSPORTATION = "Transportation"
TRAVEL = "Travel"
HOUSING = "Housing"
BILLS_AND_UTILITIES = "Bills & Utilities"
ENTERTAINMENT = "Entertainment"
HEALTH = "Health & Fitness"
PERSONAL_CARE = "Personal Care"
EDUCATION = "Education"
LOANS = "Loan Payments"
FEES = "Fees & Charges"
TRANSFERS = "Transfers"
INCOME = "Income"
GOVERNMENT = "Taxes & Government"
OTHER = "Other"

BUCKETS = (
    FOOD_AND_DINING,
    GROCERIES,
    SHOPPING,
    TRANSPORTATION,
    TRAVEL,
    HOUSING,
    BILLS_AND_UTILITIES,
    ENTERTAINMENT,
    HEALTH,
    PERSONAL_CARE,
    EDUCATION,
    LOANS,
    FEES,
    TRANSFERS,
    INCOME,
    GOVERNMENT,
    OTHER,
)

# Keys are lower-cased. Covers both the legacy category hierarchy (first
# element, e.g. "Food and Drink") and personal_finance_category primaries
# (e.g. "FOOD_AND_DRINK").
CATEGORY_LOOKUP: Dict[str, str] = {
    # legacy hierarchy
    "food and drink": FOOD_AND_DINING,
    "restaurants": FOOD_AND_DINING,
    "groceries": GROCERIES,
    "supermarkets and groceries": GROCERIES,
    "shops": SHOPPING,
    "travel": TRAVEL,
    "airlines and aviation services": TRAVEL,
    "taxi": TRANSPORTATION,
    "gas stations": TRANSPORTATION,
    "public transportation services": TRANSPORTATION,
    "recreation": ENTERTAINMENT,
    "arts and entertainment": ENTERTAINMENT,
    "healthcare": HEALTH,
    "gyms and fitness centers": HEALTH,
    "service": BILLS_AND_UTILITIES,
    "utilities": BILLS_AND_UTILITIES,
    "telecommunication services": BILLS_AND_UTILITIES,
    "subscription": BILLS_AND_UTILITIES,
    "insurance": BILLS_AND_UTILITIES,
    "rent": HOUSING,
    "mortgage": HOUSING,
    "payment": LOANS,
    "loan payment": LOANS,
    "credit card": LOANS,
    "bank fees": FEES,
    "interest": FEES,
    "transfer": TRANSFERS,
    "deposit": INCOME,
    "payroll": INCOME,
    "tax": GOVERNMENT,
    "community": OTHER,
    # personal finance category primaries
    "food_and_drink": FOOD_AND_DINING,
    "general_merchandise": SHOPPING,
    "transportation": TRANSPORTATION,
    "rent_and_utilities": BILLS_AND_UTILITIES,
    "home_improvement": HOUSING,
    "entertainment": ENTERTAINMENT,
    "medical": HEALTH,
    "personal_care": PERSONAL_CARE,
    "general_services": BILLS_AND_UTILITIES,
    "loan_payments": LOANS,
    "bank_fees": FEES,
    "transfer_in": TRANSFERS,
    "transfer_out": TRANSFERS,
    "income": INCOME,
    "government_and_non_profit": GOVERNMENT,
    "education": EDUCATION,
}

# Expense buckets treated as fixed obligations / essentials by expense analysis
FIXED_BUCKETS = frozenset({HOUSING, BILLS_AND_UTILITIES, LOANS})
ESSENTIAL_BUCKETS = frozenset({HOUSING, BILLS_AND_UTILITIES, GROCERIES, HEALTH, TRANSPORTATION, LOANS})


def normalize_category(raw: Optional[str]) -> str:
    """Map a raw category string to its bucket, falling back to Other"""
    if not raw:
        return OTHER
    key = raw.strip().lower()
    if key in CATEGORY_LOOKUP:
        return CATEGORY_LOOKUP[key]
    # Detailed strings like "Food and Drink, Restaurants" resolve by their head
    head = key.split(",")[0].strip()
    return CATEGORY_LOOKUP.get(head, OTHER)
