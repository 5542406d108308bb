"""
NUT Monitor Services

- UPS Service - NUT polling, status translation, capability reconciliation
"""
