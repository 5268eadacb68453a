"""Procesos batch/worker que corren fuera de la API."""
