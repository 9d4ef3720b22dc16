"""SoftFocus services.

- crisis_engine: crisis signal detection and the alert lifecycle
- notification_service: event-driven, preference-aware notifications
"""
