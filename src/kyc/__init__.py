"""kyc: consolidated customer profiles for know-your-customer checks.

This package aggregates personal, contact, and compliance-form data from the
customer data API into a single canonical record, and keeps those records in
a two-tier cache (an in-process volatile tier and a durable SQL tier) so that
repeated lookups do not hit the upstream providers.
"""
