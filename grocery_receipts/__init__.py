"""
Grocery receipts backend — upload, extraction and spending insights.
"""
