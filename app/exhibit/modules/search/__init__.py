"""
Search module.

Filtered lookups over un-staged transfer records plus the "all transactions
for this file / this IP" drill-downs.
"""
