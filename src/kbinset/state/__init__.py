"""State layer.

Obstruction events are normalized here and folded into a single inset
value by a pure transition policy.
"""
