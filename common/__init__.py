"""Configuración y acceso a BD compartidos por la API y el worker."""
