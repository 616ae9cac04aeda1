"""Data store package for kyc.

Holds the canonical record schema and the durable SQL tier that persists
aggregated customer records across process restarts.
"""
