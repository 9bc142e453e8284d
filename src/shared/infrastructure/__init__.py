"""
Shared Infrastructure Layer
Cache backends and tenant notification fan-out
"""
