"""
Shared Layer - Cross-Cutting Concerns
Configuration, logging, error contract, database plumbing, caching and messaging
"""
