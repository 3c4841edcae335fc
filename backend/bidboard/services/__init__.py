"""
BidBoard Backend - Services Layer
==================================

Service Inventory:
    - ApplicationService: lifecycle coordinator (submit → review → accept/reject)
    - Notifier (abstract): side channel for lifecycle events
    - LogNotifier / WebhookNotifier: concrete notifiers
    - NotificationDispatcher: runs notifiers in background tasks after commit

Services receive their Repository per call and never see HTTP objects.
"""
