"""
Kalman Object Tracker

Keeps a live registry of detected objects and answers point-in-time
position queries between detection arrivals.

Guarantees:
1. Association is by detector-supplied (class, id) key only
2. Every tracked object owns exactly one motion estimator
3. Objects not re-detected are forgotten after a bounded grace period
4. Ingestion and queries are serialized against one registry lock
"""

__version__ = "0.1.0"
__author__ = "Object Tracker Team"
