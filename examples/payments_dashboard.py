"""Example: Payments dashboard tables from a JSON export

This example demonstrates how to build the payments dashboard tables from
bookings, buses and schedules exported as JSON:
1. Resolve schedule references (Bronze)
2. Enrich bookings into fact_transactions (Silver/Core)
3. Fold into mart_bus_payments and mart_payments_daily (Gold/Mart)

Prerequisites:
- Export bookings, buses and schedules to data/*.json (lists of documents
  with an "id" field)
- Or set FP_FIRESTORE_PROJECT and FP_FIRESTORE_TOKEN and swap the schedule
  source for FirestoreScheduleSource
"""

import json
from pathlib import Path

from fleet_payments import PipelineConfig
from fleet_payments.payments import Fresh, PaymentPipeline, TransactionFilter, aggregate_daily
from fleet_payments.payments.export import export_filename, write_csv
from fleet_payments.payments.extract import StaticScheduleSource
from fleet_payments.qa import run_transactions_qa

data_root = Path("data")

bookings = json.loads((data_root / "bookings.json").read_text(encoding="utf-8"))
buses = json.loads((data_root / "buses.json").read_text(encoding="utf-8"))
schedules = json.loads((data_root / "schedules.json").read_text(encoding="utf-8"))

config = PipelineConfig(timezone="Africa/Blantyre")  # MODIFY AS NEEDED
pipeline = PaymentPipeline(StaticScheduleSource(schedules), config)

print(f"Rebuilding payment tables for {len(bookings)} bookings...")
result = pipeline.rebuild(bookings, buses)
if not isinstance(result, Fresh):
    raise SystemExit("A newer rebuild superseded this one")

snapshot = result.snapshot
if snapshot.error_banner:
    print(f"Warning: {snapshot.error_banner}")

print(f"\nTransactions (fact_transactions): {len(snapshot.transactions)} rows")
print(snapshot.transactions[["booking_reference", "route", "bus_plate", "total_amount"]].head())

print(f"\nPer-bus summaries (mart_bus_payments): {len(snapshot.bus_summaries)} rows")
print(snapshot.bus_summaries.head())

# Paid bookings of the last week
criteria = TransactionFilter(status="paid", date_window="week")
rows = snapshot.view(criteria)
totals = snapshot.totals(criteria)
print(f"\nPaid last 7 days: {totals.count} transactions, {totals.total:,.2f} total")

print("\nDaily revenue (mart_payments_daily):")
print(aggregate_daily(rows, config.timezone))

# Run QA checks on both tables
print("\nRunning QA checks...")
qa_result = run_transactions_qa(snapshot.transactions, snapshot.bus_summaries)
print(f"QA Summary: {qa_result.summary}")

out_path = data_root / export_filename()
write_csv(rows, out_path, config.timezone)
print(f"\nSaved {out_path}")
