"""
SafeCampus infrastructure layer.

Adapters behind the ports used by the services: document store,
realtime location store, push delivery, identity verification,
device storage, background tracking, metrics and error tracking.
"""
