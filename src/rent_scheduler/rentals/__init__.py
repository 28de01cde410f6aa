"""
Rental domain.

Components:
- models.py: Contract / Rent / Payment, statuses, due-date and status rules
- store.py: SQLite-backed storage with transactions and savepoints
- generation.py: monthly rent generation (scheduled and manual)
- statuses.py: rent status recalculation
- payments.py: payment recording
"""
