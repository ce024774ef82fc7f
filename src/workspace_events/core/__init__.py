"""Ids, clocks, enums, errors and settings shared by every layer."""
