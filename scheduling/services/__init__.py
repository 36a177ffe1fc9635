"""Booking engine services: calendars, slot generation, allocation, lifecycle and queries."""
