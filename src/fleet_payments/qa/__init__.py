"""QA module for the payment tables.

Example:
    >>> from fleet_payments.qa import run_transactions_qa
    >>>
    >>> result = run_transactions_qa(snapshot.transactions, snapshot.bus_summaries)
    >>> print(result.summary)
    >>> if result.has_issues:
    ...     print(result.conservation_mismatches)

"""

from fleet_payments.qa.api import TransactionsQAResult, run_transactions_qa

__all__ = ["TransactionsQAResult", "run_transactions_qa"]
