"""Orders module: order ledger and status lifecycle"""
