# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    FORECASTING = "FORECASTING"
    PROCUREMENT = "PROCUREMENT"
    PAYABLES = "PAYABLES"
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    ORGANIZATION = "ORGANIZATION"
