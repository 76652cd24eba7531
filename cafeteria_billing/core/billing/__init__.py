"""Billing engine, periods, exports and the consumption store."""
