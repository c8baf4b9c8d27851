"""
Firestore query helpers.

NOTE: firebase_admin still accepts positional where() arguments. The
deprecation warning is just a warning; keeping the call in one place makes
the eventual switch to FieldFilter a one-line change.
"""


def where_filter(query, field_path: str, op_string: str, value):
    """
    Usage:
        query = where_filter(collection, "status", "==", "pending")
        query = where_filter(query, "reporter_id", "==", user_id)
    """
    return query.where(field_path, op_string, value)
