"""Carpool trip scheduling and seat-capacity engine.

Turns a group's weekly time grid into UTC-anchored trip slots, binds
vehicles and drivers to them and serializes child seat assignments.
"""
