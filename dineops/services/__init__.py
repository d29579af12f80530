"""
                        Services Module

Contains the platform's business logic. Backends with an external edge
have an in-memory (development) and a real (staging/production)
implementation selected by ENV_MODE.

Services:
    - store: tenant-scoped document store (memory / SQL)
    - cart: per-table baskets (memory / Redis)
    - orders: basket building, checkout commit, status machine
    - receipts: receipt hand-off to the PDF renderer (mock / HTTP)
    - subscriptions: plan catalog and entitlement period
    - entitlements: session gating on the restaurant's block flag
    - notifications: in-app reminders and operator broadcasts
    - restaurants: the platform operations exposed over HTTP
"""
