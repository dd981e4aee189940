"""
Firestore query helpers.

All filters go through where_filter() so every query uses the keyword
FieldFilter form of the client API.
"""

from google.cloud.firestore_v1.base_query import FieldFilter


def where_filter(query, field_path: str, op_string: str, value):
    """
    Apply one filter to a collection or query.

    Usage:
        query = where_filter(collection, "status", "==", "active")
        query = where_filter(query, "expires_at", "<=", now)
    """
    return query.where(filter=FieldFilter(field_path, op_string, value))
