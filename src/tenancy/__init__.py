"""
Tenancy - control-plane records and per-tenant partition routing
"""
