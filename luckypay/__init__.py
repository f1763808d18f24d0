"""
LuckyPay

Digital-banking dashboard backend: a profile, transaction and bank-account
schema guarded by row-level security policies, with triggers that provision
profiles, stamp timestamps, audit balance changes and validate amounts.
"""

__version__ = "1.0.0"
