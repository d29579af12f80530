"""
                DineOps Restaurant Platform

A multi-tenant backend for restaurant ordering: per-restaurant menus,
baskets and checkout, order management for restaurant admins, and
subscription plans plus access control for the platform operator.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
