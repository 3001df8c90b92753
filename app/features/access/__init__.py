"""
Access control feature module.

Role-based access control for church administration: a permission catalog,
roles, scoped and time-limited role assignments, an approval workflow for
role requests, and an audit trail of every decision and mutation.
"""
