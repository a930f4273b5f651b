"""Clinical records app.

Models, serializers, services, views and route registrations for medical
records, their version history and prescriptions.
"""
