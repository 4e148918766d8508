"""
Birthday calendar service.

A public form collects birthday submissions; a single allow-listed
administrator approves or declines them, and approved birthdays become
yearly all-day events in Google Calendar.
"""
