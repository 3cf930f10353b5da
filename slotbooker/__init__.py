"""
slotbooker - bookable time slots across calendars, schedules and timezones.
"""

__version__ = "0.1.0"
