"""
Repair-order lifecycle: status machine, audit trail, totals and orchestration.
"""
