"""
Policies: snapshot-numbered ledger (previous label logged on change), listed by issue date.
"""
