"""
Freight document decision engine.

Scores how far an extracted freight-forwarding document can be trusted and
turns it into an operational action (owner, priority, deadline), closing
open actions automatically when later documents satisfy them.
"""

__version__ = "0.1.0"
