import csv
import re
from io import StringIO
from typing import Mapping, Optional, Sequence

from schemas import TransactionRecord

EXPORT_HEADERS = [
    "Date",
    "Merchant",
    "Category",
    "Amount",
    "Type",
    "Account",
    "Notes",
    "Recurring",
]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def export_transactions(
    transactions: Sequence[TransactionRecord],
    account_names: Optional[Mapping[str, str]] = None,
) -> str:
    """Render transactions as CSV, newest first as given.

    ``account_names`` maps account ids to display names; unknown ids are
    written as-is.
    """
    account_names = account_names or {}
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                sanitize_csv_value(txn.name),
                sanitize_csv_value(txn.category),
                f"{txn.numeric_amount:.2f}",
                txn.type.value,
                sanitize_csv_value(account_names.get(txn.account_id, txn.account_id)),
                sanitize_csv_value(txn.description or ""),
                "Yes" if txn.is_recurring else "No",
            ]
        )
    return output.getvalue()
