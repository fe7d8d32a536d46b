"""Cluster state records, SQL query building, routing helpers and request rewriting for BigBlueButton load balancing."""

__version__ = "0.1.0"