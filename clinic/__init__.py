"""Django project package for the clinic records service."""
