"""
Metrics sync: batch ingestion of business metrics from Dynamics 365,
Zoho Analytics and Windsor.ai into SQL, plus the report aggregations
built on top of the stored rows.
"""

__version__ = '1.0.0'
