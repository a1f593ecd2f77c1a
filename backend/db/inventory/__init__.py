"""
Inventory ledger storage.

Tables:
- item table (header row defines the columns: reserved code/series/name/volume/
  quantity/last_update, every other column is a per-location quantity cell)
- transaction table (append-only deltas applied to the item table)
"""
