"""
Scheduling Domain

Working schedules, slot availability, conflict detection, the appointment
lifecycle and the booking use cases built on them.

Structure:
```
salonbook/domain/scheduling/
├── enums.py                # Statuses, actions, resolutions, blocked reasons
├── time_calculator.py      # Time parsing and calculations
├── repository.py           # Schedule and appointment database queries
├── working_schedule.py     # Weekly hours + special hours resolution
├── availability_service.py # Slot grids
├── conflicts.py            # Interval overlap and service extension checks
├── lifecycle.py            # Status transition table, derived substate
├── booking_service.py      # Booking, service changes, transitions, reschedule
├── schedule_service.py     # Working hours management
├── notifications.py        # Post-commit notifications, cache invalidation
├── schemas.py              # Request/response schemas
└── router.py               # HTTP endpoints
```

Every write of an appointment interval goes through BookingService, which
re-validates under a provider row lock. Slot grids are advisory.
"""
