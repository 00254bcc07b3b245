"""
Pursuit module.

A pursuit is a tracked grant: Discovered -> ... -> Awarded/Declined -> Closeout.
Tracking a search hit is idempotent on its `source:external_id` key.
"""
