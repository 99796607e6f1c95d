"""
Domain Events - ORM listeners enforcing billing invariants.
"""
